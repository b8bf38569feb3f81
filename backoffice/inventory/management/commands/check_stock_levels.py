"""
Django management command to list items at or below their minimum stock level
"""
from django.core.management.base import BaseCommand, CommandError
from django.db.models import F
from backoffice.inventory.models import Item


class Command(BaseCommand):
    help = 'Report items whose on-hand quantity is at or below their minimum stock level'

    def add_arguments(self, parser):
        parser.add_argument(
            '--item-id',
            type=int,
            help='Check specific item ID only',
        )
        parser.add_argument(
            '--show-all',
            action='store_true',
            help='Show all active items, not just those needing reorder',
        )

    def handle(self, *args, **options):
        item_id = options.get('item_id')
        show_all = options.get('show_all', False)

        items = Item.objects.filter(is_active=True)
        if item_id:
            items = Item.objects.filter(id=item_id)
            if not items.exists():
                raise CommandError(f"Item {item_id} does not exist")
        elif not show_all:
            items = items.filter(quantity__lte=F('min_stock_level'))

        items = items.order_by('quantity', 'name')

        self.stdout.write("=" * 80)
        self.stdout.write(self.style.SUCCESS("STOCK LEVEL REPORT"))
        self.stdout.write("=" * 80)
        self.stdout.write(f"{'ID':>6}  {'Name':<40} {'Qty':>8} {'Min':>8}")

        needs_reorder = 0
        for item in items:
            line = f"{item.id:>6}  {item.name[:40]:<40} {item.quantity:>8} {item.min_stock_level:>8}"
            if item.quantity == 0:
                self.stdout.write(self.style.ERROR(line + "  OUT OF STOCK"))
                needs_reorder += 1
            elif item.is_low_stock:
                self.stdout.write(self.style.WARNING(line + "  LOW"))
                needs_reorder += 1
            else:
                self.stdout.write(line)

        self.stdout.write("")
        self.stdout.write(f"Items needing reorder: {needs_reorder}")
