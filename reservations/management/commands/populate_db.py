from django.core.management.base import BaseCommand
from reservations.models import Room


class Command(BaseCommand):
    help = 'Populate database with the sample apartments'

    def handle(self, *args, **options):
        # Create rooms
        rooms_data = [
            {
                'name': 'Apartment 1',
                'room_type': 'Standard Apartment',
                'price_cents': 8500,  # 85 EUR
                'capacity': 4,
                'description': 'Ground floor apartment with garden access'
            },
            {
                'name': 'Apartment 2',
                'room_type': 'Standard Apartment',
                'price_cents': 8500,
                'capacity': 4,
                'description': 'Ground floor apartment with kitchenette'
            },
            {
                'name': 'Apartment 3',
                'room_type': 'Standard Apartment',
                'price_cents': 9000,  # 90 EUR
                'capacity': 4,
                'description': 'First floor apartment with balcony'
            },
            {
                'name': 'Apartment 4',
                'room_type': 'Standard Apartment',
                'price_cents': 9000,
                'capacity': 4,
                'description': 'First floor apartment with mountain view'
            },
            {
                'name': 'Apartment 5',
                'room_type': 'Standard Apartment',
                'price_cents': 9500,  # 95 EUR
                'capacity': 4,
                'description': 'First floor apartment with sea view'
            },
            {
                'name': 'Apartment 6',
                'room_type': 'Standard Apartment',
                'price_cents': 9500,
                'capacity': 4,
                'description': 'Top floor apartment with sea view'
            },
            {
                'name': 'Apartment 7',
                'room_type': 'Standard Apartment',
                'price_cents': 10000,  # 100 EUR
                'capacity': 5,
                'description': 'Top floor apartment with large terrace'
            },
        ]

        for room_data in rooms_data:
            room, created = Room.objects.get_or_create(
                name=room_data['name'],
                defaults=room_data
            )

            if created:
                self.stdout.write(f'Created room: {room.name} - {room.room_type}')
            else:
                self.stdout.write(f'Room {room.name} already exists')

        self.stdout.write(
            self.style.SUCCESS('Successfully populated database with sample data')
        )
