from django.core.management.base import BaseCommand

from pricing.models import RateCards
from pricing.services.repository import card_from_model
from pricing.services.tiers import validate_price_monotonic, validate_tiers


class Command(BaseCommand):
    help = "Validates that every rate card has contiguous, open-ended tiers and reports rising unit prices."

    def add_arguments(self, parser):
        parser.add_argument("--tenant", type=str, help="Only check cards of this tenant code")

    def handle(self, *args, **options):
        self.stdout.write("Starting validation of rate card tiers...")
        cards_with_errors = 0
        cards_with_warnings = 0

        qs = RateCards.objects.all().select_related("tenant").prefetch_related("tiers").order_by("id")
        if options.get("tenant"):
            qs = qs.filter(tenant__code=options["tenant"])
        total_cards = qs.count()

        if total_cards == 0:
            self.stdout.write(self.style.WARNING("No rate cards found in the database to validate."))
            return

        for obj in qs:
            card = card_from_model(obj)
            errors = validate_tiers(card.tiers)
            warnings = validate_price_monotonic(card.tiers)
            if not errors and not warnings:
                continue
            header = f"--- Rate card {card.id} ({card.tenant_id} {card.mode} {card.corridor_label}, {card.rate_basis}) ---"
            if errors:
                cards_with_errors += 1
                self.stdout.write(self.style.ERROR(header))
            else:
                cards_with_warnings += 1
                self.stdout.write(self.style.WARNING(header))
            for error in errors:
                self.stdout.write(f"  - ERROR: {error}")
            for warning in warnings:
                self.stdout.write(f"  - {warning}")

        self.stdout.write("-" * 20)
        if cards_with_errors:
            self.stdout.write(self.style.ERROR(
                f"\nValidation complete. {cards_with_errors} out of {total_cards} cards cannot be priced."
            ))
        elif cards_with_warnings:
            self.stdout.write(self.style.WARNING(
                f"\nValidation complete. Found warnings in {cards_with_warnings} out of {total_cards} cards."
            ))
        else:
            self.stdout.write(self.style.SUCCESS(f"\nValidation complete. All {total_cards} cards look good."))
