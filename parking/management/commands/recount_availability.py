from django.core.management.base import BaseCommand, CommandError

from parking.models import ParkingLot


class Command(BaseCommand):
    help = 'Rebuild the cached available_slots counter of parking lots from slot statuses'

    def add_arguments(self, parser):
        parser.add_argument('--lot', type=int, help='Only recount this parking lot id')

    def handle(self, *args, **options):
        lots = ParkingLot.objects.all()
        if options['lot'] is not None:
            lots = lots.filter(pk=options['lot'])
            if not lots.exists():
                raise CommandError(f"Parking lot {options['lot']} does not exist")

        corrected = 0
        for lot in lots:
            previous = lot.available_slots
            current = lot.recount_available_slots()
            if previous != current:
                corrected += 1
                self.stdout.write(self.style.WARNING(f'{lot.name}: {previous} -> {current}'))
            else:
                self.stdout.write(f'{lot.name}: {current} (unchanged)')

        self.stdout.write(self.style.SUCCESS(f'Recounted {lots.count()} lots, corrected {corrected}'))
