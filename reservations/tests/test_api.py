from datetime import date, timedelta
from unittest import mock

from django.contrib.auth.models import User
from rest_framework import status
from rest_framework.test import APITestCase

from reservations.channel import compute_signature
from reservations.models import Booking, Room

from .fakes import WEBHOOK_SECRET, FakeGateway, make_booking, make_lifecycle


class RoomApiTestCase(APITestCase):
    """Test room search and availability endpoints"""

    def setUp(self):
        self.room = Room.objects.create(name="Apartment 1", room_type="Standard Apartment", price_cents=8500, capacity=4)
        self.suite = Room.objects.create(name="Apartment 7", room_type="Standard Apartment", price_cents=15000, capacity=5)
        make_booking(self.room, date(2025, 8, 1), date(2025, 8, 5))

    def test_list_all_rooms(self):
        response = self.client.get('/api/rooms/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 2)
        self.assertEqual(response.data[0]['price'], 85.0)

    def test_search_available_rooms(self):
        response = self.client.get('/api/rooms/', {'check_in': '2025-08-02', 'check_out': '2025-08-04'})
        self.assertEqual([r['id'] for r in response.data], [self.suite.id])

        response = self.client.get('/api/rooms/', {'check_in': '2025-08-10', 'check_out': '2025-08-12', 'max_price': 100})
        self.assertEqual([r['id'] for r in response.data], [self.room.id])

    def test_invalid_date_format(self):
        response = self.client.get('/api/rooms/', {'check_in': '02/08/2025', 'check_out': '2025-08-04'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'validation_error')

    def test_room_availability(self):
        url = f'/api/rooms/{self.room.id}/availability/'
        response = self.client.get(url, {'check_in': '2025-08-03', 'check_out': '2025-08-07'})
        self.assertEqual(response.data, {'room_id': self.room.id, 'is_available': False})

        response = self.client.get(url, {'check_in': '2025-08-05', 'check_out': '2025-08-07'})
        self.assertTrue(response.data['is_available'])

    def test_room_availability_unknown_room(self):
        response = self.client.get('/api/rooms/9999/availability/', {'check_in': '2025-08-03', 'check_out': '2025-08-07'})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'room_not_found')

    def test_type_availability(self):
        response = self.client.get('/api/availability/type/', {
            'room_type': 'Standard Apartment', 'check_in': '2025-08-02', 'check_out': '2025-08-03',
        })
        self.assertEqual(response.data, {'room_type': 'Standard Apartment', 'available_count': 1})

    def test_calendar(self):
        response = self.client.get('/api/availability/calendar/', {'month': 8, 'year': 2025})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['month'], 8)
        self.assertEqual(len(response.data['availability']), 31)
        self.assertEqual(
            response.data['availability']['2025-08-01'],
            {'available_count': 1, 'total_count': 2, 'status': 'limited'},
        )
        self.assertEqual(response.data['availability']['2025-08-05']['available_count'], 2)

    def test_calendar_bad_month(self):
        response = self.client.get('/api/availability/calendar/', {'month': 14, 'year': 2025})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_calendar_partial_period(self):
        for params in ({'month': 8}, {'year': 2025}, {'month': 1, 'year': 0}):
            with self.subTest(params=params):
                response = self.client.get('/api/availability/calendar/', params)
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_health(self):
        response = self.client.get('/health')
        self.assertEqual(response.json(), {'status': 'ok'})


class PaymentApiTestCase(APITestCase):
    """Test the guest booking endpoints"""

    def setUp(self):
        self.room = Room.objects.create(name="Apartment 2", room_type="Standard Apartment", price_cents=9000, capacity=2)
        self.gateway = FakeGateway()
        patcher = mock.patch('reservations.views.build_lifecycle', lambda: make_lifecycle(gateway=self.gateway))
        patcher.start()
        self.addCleanup(patcher.stop)
        self.check_in = date.today() + timedelta(days=14)
        self.check_out = self.check_in + timedelta(days=2)
        self.guest = {'first_name': 'Anna', 'last_name': 'Schmidt', 'email': 'anna@example.com', 'language': 'de'}

    def _stay(self, **extra):
        return {
            'room_id': self.room.id,
            'check_in': self.check_in.isoformat(),
            'check_out': self.check_out.isoformat(),
            'adults': 2,
            **extra,
        }

    def test_cash_booking(self):
        response = self.client.post('/api/payments/cash/', self._stay(guest=self.guest), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'CONFIRMED')
        self.assertEqual(response.data['payment_status'], 'PENDING')
        self.assertEqual(response.data['total_cents'], 20340)
        self.assertEqual(response.data['language'], 'de')
        self.assertEqual(response.data['room']['id'], self.room.id)

    def test_cash_booking_with_matching_total(self):
        response = self.client.post('/api/payments/cash/', self._stay(guest=self.guest, total_cents=20340), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total_cents'], 20340)

    def test_cash_booking_total_mismatch(self):
        response = self.client.post('/api/payments/cash/', self._stay(guest=self.guest, total_cents=1), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Booking.objects.exists())

    def test_cash_booking_negative_total(self):
        response = self.client.post('/api/payments/cash/', self._stay(guest=self.guest, total_cents=-5), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cash_booking_conflict(self):
        make_booking(self.room, self.check_in, self.check_out)
        response = self.client.post('/api/payments/cash/', self._stay(guest=self.guest), format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'room_not_available')

    def test_cash_booking_over_capacity(self):
        response = self.client.post('/api/payments/cash/', self._stay(guest=self.guest, children=1), format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'capacity_exceeded')
        self.assertFalse(Booking.objects.exists())

    def test_inverted_dates(self):
        data = self._stay(guest=self.guest, check_in=self.check_out.isoformat(), check_out=self.check_in.isoformat())
        response = self.client.post('/api/payments/cash/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_card_flow(self):
        response = self.client.post('/api/payments/intent/', self._stay(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['amount_cents'], 20340)
        intent_id = response.data['intent_id']

        response = self.client.post('/api/payments/confirm/', {'intent_id': intent_id, 'guest': self.guest}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['payment_status'], 'PAID')
        self.assertEqual(response.data['payment_method'], 'CARD')

        again = self.client.post('/api/payments/confirm/', {'intent_id': intent_id, 'guest': self.guest}, format='json')
        self.assertEqual(again.data['id'], response.data['id'])

    def test_confirm_unknown_intent(self):
        response = self.client.post('/api/payments/confirm/', {'intent_id': 'pi_missing', 'guest': self.guest}, format='json')
        self.assertEqual(response.status_code, status.HTTP_402_PAYMENT_REQUIRED)
        self.assertEqual(response.data['code'], 'payment_error')


class AdminBookingApiTestCase(APITestCase):
    """Test the administrative booking endpoints"""

    def setUp(self):
        self.room = Room.objects.create(name="Apartment 3", room_type="Standard Apartment", price_cents=9000, capacity=4)
        self.admin = User.objects.create_user('frontdesk', 'desk@example.com', 'pass', is_staff=True)
        self.gateway = FakeGateway()
        patcher = mock.patch('reservations.views.build_lifecycle', lambda: make_lifecycle(gateway=self.gateway))
        patcher.start()
        self.addCleanup(patcher.stop)
        start = date.today() + timedelta(days=3)
        self.booking = make_booking(
            self.room, start, start + timedelta(days=2),
            payment_method=Booking.PaymentMethod.CARD,
            payment_status=Booking.PaymentStatus.PAID,
            charge_ref='ch_123',
            guest_email='paid@example.com',
        )
        self.other = make_booking(self.room, start + timedelta(days=5), start + timedelta(days=6))

    def test_requires_staff(self):
        self.assertEqual(self.client.get('/api/bookings/').status_code, status.HTTP_403_FORBIDDEN)
        guest = User.objects.create_user('guest', 'guest@example.com', 'pass')
        self.client.force_authenticate(guest)
        response = self.client.post(f'/api/bookings/{self.booking.id}/cancel/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_and_filter(self):
        self.client.force_authenticate(self.admin)
        response = self.client.get('/api/bookings/')
        self.assertEqual(len(response.data), 2)
        response = self.client.get('/api/bookings/', {'email': 'paid@example.com'})
        self.assertEqual([b['id'] for b in response.data], [self.booking.id])

        response = self.client.get(f'/api/bookings/{self.booking.id}/')
        self.assertEqual(response.data['booking_number'], self.booking.booking_number)

    def test_cancel(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(
            f'/api/bookings/{self.booking.id}/cancel/', {'reason': 'Guest request'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'CANCELLED')
        self.assertEqual(response.data['payment_status'], 'REFUNDED')
        self.assertEqual(response.data['refund_cents'], self.booking.total_cents)
        self.assertTrue(response.data['refund_ref'])
        event = self.booking.history.get(action='cancelled')
        self.assertEqual(event.actor, 'frontdesk')

    def test_cancel_twice(self):
        self.client.force_authenticate(self.admin)
        self.client.post(f'/api/bookings/{self.booking.id}/cancel/', {}, format='json')
        response = self.client.post(f'/api/bookings/{self.booking.id}/cancel/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'invalid_state')

    def test_cancel_with_failing_refund(self):
        self.gateway.fail_refunds = True
        self.client.force_authenticate(self.admin)
        response = self.client.post(f'/api/bookings/{self.booking.id}/cancel/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_402_PAYMENT_REQUIRED)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)

    def test_status_transition(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(f'/api/bookings/{self.booking.id}/status/', {'status': 'CHECKED_IN'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'CHECKED_IN')

        response = self.client.post(f'/api/bookings/{self.booking.id}/status/', {'status': 'CONFIRMED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_bulk_status(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post('/api/bookings/bulk_status/', {
            'booking_ids': [self.booking.id, self.other.id], 'status': 'CHECKED_IN',
        }, format='json')
        self.assertEqual(sorted(response.data['updated']), sorted([self.booking.id, self.other.id]))

        response = self.client.post('/api/bookings/bulk_status/', {'booking_ids': [], 'status': 'CHECKED_IN'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'no_ids_provided')

    def test_bulk_delete(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post('/api/bookings/bulk_delete/', {'booking_ids': [self.other.id]}, format='json')
        self.assertEqual(response.data, {'deleted_count': 1})

        response = self.client.post('/api/bookings/bulk_delete/', {'booking_ids': [9999]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'no_matching_records')


class WebhookApiTestCase(APITestCase):
    """Test the signed channel webhook endpoint"""

    def setUp(self):
        Room.objects.create(
            name="Apartment 4", room_type="Standard Apartment", price_cents=9000, capacity=4,
            external_room_id="CH-ROOM-4",
        )
        patcher = mock.patch('reservations.views.build_channel_adapter', lambda: make_lifecycle().channel)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.body = (
            b'{"event": "booking.created", "data": {"externalRoomId": "CH-ROOM-4", '
            b'"externalBookingId": "BCOM-77", "checkInDate": "2025-10-01", "checkOutDate": "2025-10-03", '
            b'"totalPrice": 180, "guestDetails": {"firstName": "Jan", "lastName": "Visser"}}}'
        )

    def _post(self, signature):
        extra = {'HTTP_X_CHANNEL_SIGNATURE': signature} if signature else {}
        return self.client.generic('POST', '/api/channel/webhook/', self.body,
                                   content_type='application/json', **extra)

    def test_signed_delivery(self):
        response = self._post(compute_signature(WEBHOOK_SECRET, self.body))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'processed')
        self.assertTrue(response.data['received'])

        replay = self._post(compute_signature(WEBHOOK_SECRET, self.body))
        self.assertEqual(replay.status_code, status.HTTP_200_OK)
        self.assertEqual(replay.data['status'], 'duplicate')
        self.assertEqual(Booking.objects.filter(external_booking_id='BCOM-77').count(), 1)

    def test_missing_signature(self):
        response = self._post(None)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['code'], 'invalid_signature')

    def test_wrong_signature(self):
        response = self._post(compute_signature('not-the-secret', self.body))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(Booking.objects.exists())
