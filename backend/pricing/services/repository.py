"""
Read-side access to tenant pricing configuration.

The quote engine only depends on the two interfaces below. The in-memory
implementations back unit tests and demos; the Django ones read the ORM.
Every method returns frozen snapshots. A calculation makes several reads;
it runs them inside ``TenantConfigStore.consistent_read`` so that on the
Django side they share one transaction (REPEATABLE READ on PostgreSQL) and
an admin write committed in between is not mixed into the result.
"""

from __future__ import annotations

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager, nullcontext
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from django.db import connection, transaction
from django.utils.timezone import now

from ..dataclasses import (
    AddonCatalogEntry,
    PlanCatalogEntry,
    RateCardSnapshot,
    RateTier,
    SurchargeRule,
    TenantPricingContext,
)
from .errors import NoCorridorFound, RateCardNotFound, TenantNotFound

logger = logging.getLogger(__name__)

CITY = 2
COUNTRY = 1
EXACT = 2
PARTIAL = 1
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# -------- corridor matching --------
def _norm(value: Optional[str]) -> str:
    return " ".join((value or "").lower().split())


def token_match(stored: Optional[str], query: Optional[str]) -> int:
    """EXACT, PARTIAL (substring either way) or 0. Blank values never match."""
    s, q = _norm(stored), _norm(query)
    if not s or not q:
        return 0
    if s == q:
        return EXACT
    if q in s or s in q:
        return PARTIAL
    return 0


def side_match(city: str, country: str, query: str) -> Optional[Tuple[int, int]]:
    """(level, exactness) for one end of a corridor; a city hit outranks a country hit."""
    hit = token_match(city, query)
    if hit:
        return CITY, hit
    hit = token_match(country, query)
    if hit:
        return COUNTRY, hit
    return None


def corridor_rank(card: RateCardSnapshot, origin: str, destination: str) -> Optional[Tuple[int, int]]:
    o = side_match(card.origin_city, card.origin_country, origin)
    if o is None:
        return None
    dst = side_match(card.destination_city, card.destination_country, destination)
    if dst is None:
        return None
    return o[0] + dst[0], o[1] + dst[1]


def creation_key(card: RateCardSnapshot):
    return (card.created_at is None, card.created_at or EPOCH, card.id)


def select_rate_card(
    cards: Iterable[RateCardSnapshot],
    origin: str,
    destination: str,
    on_date: Optional[date] = None,
) -> Optional[RateCardSnapshot]:
    """
    Pick the most specific eligible card: city+city beats city+country beats
    country+country, exact beats substring, and remaining ties go to the
    first-created card.
    """
    ranked = []
    for card in cards:
        if not card.is_eligible(on_date):
            continue
        rank = corridor_rank(card, origin, destination)
        if rank is not None:
            ranked.append((rank, card))
    if not ranked:
        return None
    best_rank = max(rank for rank, _ in ranked)
    best = sorted((card for rank, card in ranked if rank == best_rank), key=creation_key)
    if len(best) > 1:
        logger.debug("Corridor %s -> %s matched %s cards equally; using first-created %s",
                     origin, destination, len(best), best[0].id)
    return best[0]


def corridor_labels(cards: Iterable[RateCardSnapshot], on_date: Optional[date] = None) -> List[str]:
    labels: List[str] = []
    for card in sorted(cards, key=creation_key):
        if card.is_eligible(on_date) and card.corridor_label not in labels:
            labels.append(card.corridor_label)
    return labels


# -------- rate cards --------
class RateCardRepository(ABC):

    @abstractmethod
    def list(self, tenant_id: str, mode: Optional[str] = None, rate_basis: Optional[str] = None,
             include_inactive: bool = False) -> List[RateCardSnapshot]:
        """Cards of a tenant, first-created first."""

    @abstractmethod
    def upsert(self, card: RateCardSnapshot) -> RateCardSnapshot:
        """Create (id 0/None) or replace a card, tiers included."""

    def find(
        self,
        tenant_id: str,
        mode: str,
        rate_basis: str,
        origin: str,
        destination: str,
        on_date: Optional[date] = None,
    ) -> RateCardSnapshot:
        cards = self.list(tenant_id, mode=mode)
        card = select_rate_card([c for c in cards if c.rate_basis == rate_basis], origin, destination, on_date)
        if card is None:
            available = corridor_labels(cards, on_date)
            logger.info("No %s/%s corridor for tenant %s: %s -> %s (%s available)",
                        mode, rate_basis, tenant_id, origin, destination, len(available))
            raise NoCorridorFound(mode, rate_basis, origin, destination, available)
        logger.debug("Tenant %s %s %s -> %s matched rate card %s (%s)",
                     tenant_id, mode, origin, destination, card.id, card.corridor_label)
        return card


class InMemoryRateCardRepository(RateCardRepository):
    def __init__(self, cards: Sequence[RateCardSnapshot] = ()):
        self._lock = threading.Lock()
        self._cards: Dict[int, RateCardSnapshot] = {}
        self._ids = itertools.count(1)
        for card in cards:
            self.upsert(card)

    def list(self, tenant_id, mode=None, rate_basis=None, include_inactive=False):
        cards = list(self._cards.values())
        out = [
            c for c in cards
            if c.tenant_id == tenant_id
            and (mode is None or c.mode == mode)
            and (rate_basis is None or c.rate_basis == rate_basis)
            and (include_inactive or c.active)
        ]
        return sorted(out, key=creation_key)

    def upsert(self, card):
        with self._lock:
            card_id = card.id or next(self._ids)
            while not card.id and card_id in self._cards:
                card_id = next(self._ids)
            previous = self._cards.get(card_id)
            if card.id and previous is not None and previous.tenant_id != card.tenant_id:
                raise RateCardNotFound(f"Tenant '{card.tenant_id}' has no rate card {card.id}")
            created_at = previous.created_at if previous else (card.created_at or now())
            stored = replace(card, id=card_id, created_at=created_at)
            # Copy-on-write so concurrent readers keep the dict they already hold
            cards = dict(self._cards)
            cards[card_id] = stored
            self._cards = cards
            return stored


def card_from_model(obj) -> RateCardSnapshot:
    return RateCardSnapshot(
        id=obj.id,
        tenant_id=obj.tenant.code,
        mode=obj.mode,
        rate_basis=obj.rate_basis,
        origin_country=obj.origin_country,
        origin_city=obj.origin_city or "",
        origin_region=obj.origin_region or "",
        destination_country=obj.destination_country,
        destination_city=obj.destination_city or "",
        destination_region=obj.destination_region or "",
        currency=obj.currency.upper(),
        tiers=tuple(RateTier(t.lower, t.upper, t.unit_price) for t in sorted(obj.tiers.all(), key=lambda t: t.lower)),
        min_charge=obj.min_charge,
        fuel_surcharge_pct=obj.fuel_surcharge_pct,
        security_surcharge_pct=obj.security_surcharge_pct,
        peak_season_surcharge_pct=obj.peak_season_surcharge_pct,
        active=obj.active,
        valid_from=obj.valid_from,
        valid_until=obj.valid_until,
        created_at=obj.created_at,
    )


class DjangoRateCardRepository(RateCardRepository):
    def list(self, tenant_id, mode=None, rate_basis=None, include_inactive=False):
        from pricing.models import RateCards

        qs = RateCards.objects.filter(tenant__code=tenant_id).select_related("tenant").prefetch_related("tiers")
        if mode is not None:
            qs = qs.filter(mode=mode)
        if rate_basis is not None:
            qs = qs.filter(rate_basis=rate_basis)
        if not include_inactive:
            qs = qs.filter(active=True)
        return [card_from_model(obj) for obj in qs.order_by("created_at", "id")]

    @transaction.atomic
    def upsert(self, card):
        from pricing.models import RateCards, RateTiers
        from tenants.models import Tenant

        try:
            tenant = Tenant.objects.get(code=card.tenant_id)
        except Tenant.DoesNotExist:
            raise TenantNotFound(f"Unknown tenant '{card.tenant_id}'")
        fields = {
            "tenant": tenant,
            "mode": card.mode,
            "rate_basis": card.rate_basis,
            "origin_region": card.origin_region,
            "origin_country": card.origin_country,
            "origin_city": card.origin_city,
            "destination_region": card.destination_region,
            "destination_country": card.destination_country,
            "destination_city": card.destination_city,
            "currency": card.currency.upper(),
            "min_charge": card.min_charge,
            "fuel_surcharge_pct": card.fuel_surcharge_pct,
            "security_surcharge_pct": card.security_surcharge_pct,
            "peak_season_surcharge_pct": card.peak_season_surcharge_pct,
            "active": card.active,
            "valid_from": card.valid_from,
            "valid_until": card.valid_until,
        }
        if card.id:
            obj = RateCards.objects.select_for_update().filter(id=card.id, tenant=tenant).first()
            if obj is None:
                raise RateCardNotFound(f"Tenant '{card.tenant_id}' has no rate card {card.id}")
            for name, value in fields.items():
                setattr(obj, name, value)
            obj.save()
        else:
            obj = RateCards.objects.create(**fields)
        obj.tiers.all().delete()
        RateTiers.objects.bulk_create(
            [RateTiers(rate_card=obj, lower=t.lower, upper=t.upper, unit_price=t.unit_price) for t in card.tiers]
        )
        obj = RateCards.objects.select_related("tenant").prefetch_related("tiers").get(id=obj.id)
        return card_from_model(obj)


# -------- tenant configuration --------
class TenantConfigStore(ABC):

    def consistent_read(self):
        """Context in which a group of reads sees a single state of the configuration."""
        return nullcontext()

    @abstractmethod
    def tenant_context(self, tenant_id: str) -> TenantPricingContext:
        """Raise TenantNotFound for unknown or inactive tenants."""

    @abstractmethod
    def surcharge_rules(self, tenant_id: str) -> List[SurchargeRule]:
        """Active tenant-level rules, global and card-attached."""

    @abstractmethod
    def addon_catalog(self, tenant_id: str) -> Dict[str, AddonCatalogEntry]:
        """Add-ons keyed by code; inactive entries are kept so lookups can tell them apart."""

    @abstractmethod
    def plan(self, tenant_id: str, plan_id: str) -> Optional[PlanCatalogEntry]:
        """The tenant's resold plan with that code, or None."""


class InMemoryTenantConfigStore(TenantConfigStore):
    def __init__(
        self,
        tenants: Sequence[TenantPricingContext] = (),
        surcharge_rules: Optional[Dict[str, Sequence[SurchargeRule]]] = None,
        addons: Optional[Dict[str, Sequence[AddonCatalogEntry]]] = None,
        plans: Optional[Dict[str, Sequence[PlanCatalogEntry]]] = None,
    ):
        self._tenants = {t.tenant_id: t for t in tenants}
        self._rules = {k: tuple(v) for k, v in (surcharge_rules or {}).items()}
        self._addons = {k: tuple(v) for k, v in (addons or {}).items()}
        self._plans = {k: tuple(v) for k, v in (plans or {}).items()}

    def tenant_context(self, tenant_id):
        try:
            return self._tenants[tenant_id]
        except KeyError:
            raise TenantNotFound(f"Unknown tenant '{tenant_id}'")

    def surcharge_rules(self, tenant_id):
        return list(self._rules.get(tenant_id, ()))

    def addon_catalog(self, tenant_id):
        return {a.code: a for a in self._addons.get(tenant_id, ())}

    def plan(self, tenant_id, plan_id):
        for p in self._plans.get(tenant_id, ()):
            if p.code == plan_id:
                return p
        return None

    def set_tenant(self, context: TenantPricingContext) -> None:
        tenants = dict(self._tenants)
        tenants[context.tenant_id] = context
        self._tenants = tenants


class DjangoTenantConfigStore(TenantConfigStore):
    @contextmanager
    def consistent_read(self):
        outermost = not connection.in_atomic_block
        with transaction.atomic():
            # Only allowed as the first statement of the transaction
            if outermost and connection.vendor == "postgresql":
                with connection.cursor() as cursor:
                    cursor.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ")
            yield

    def tenant_context(self, tenant_id):
        from tenants.models import Tenant

        tenant = Tenant.objects.filter(code=tenant_id, active=True).first()
        if tenant is None:
            raise TenantNotFound(f"Unknown tenant '{tenant_id}'")
        return TenantPricingContext(
            tenant_id=tenant.code,
            name=tenant.name,
            default_currency=tenant.default_currency.upper(),
            vat_rate=tenant.vat_rate,
            margin_mode=tenant.margin_mode or None,
            margin_value=tenant.margin_value,
        )

    def surcharge_rules(self, tenant_id):
        from pricing.models import SurchargeRules

        qs = SurchargeRules.objects.filter(tenant__code=tenant_id, active=True).order_by("position", "id")
        return [
            SurchargeRule(
                code=r.code,
                name=r.name,
                kind=r.kind,
                value=r.value,
                base=r.base,
                compounding=r.compounding,
                rate_card_id=r.rate_card_id,
                position=r.position,
            )
            for r in qs
        ]

    def addon_catalog(self, tenant_id):
        from pricing.models import ServiceAddons

        catalog: Dict[str, AddonCatalogEntry] = {}
        qs = ServiceAddons.objects.filter(tenant__code=tenant_id).select_related("owner_addon")
        for a in qs:
            owner = a.owner_addon
            if owner is not None:
                # Resold owner service: owner's base price, tenant markup goes on a margin line
                entry = AddonCatalogEntry(
                    code=a.code,
                    name=a.name,
                    pricing_type=owner.pricing_type,
                    price=owner.price,
                    currency=owner.currency.upper(),
                    taxable=owner.taxable,
                    active=a.active and owner.active,
                    owner_addon_code=owner.code,
                    margin_mode=a.margin_mode or None,
                    margin_value=a.margin_value,
                )
            else:
                entry = AddonCatalogEntry(
                    code=a.code,
                    name=a.name,
                    pricing_type=a.pricing_type,
                    price=a.price,
                    currency=a.currency.upper(),
                    taxable=a.taxable,
                    active=a.active,
                )
            catalog[a.code] = entry
        return catalog

    def plan(self, tenant_id, plan_id):
        from tenants.models import TenantPlan

        tp = (TenantPlan.objects
              .filter(tenant__code=tenant_id, code=plan_id)
              .select_related("owner_plan")
              .first())
        if tp is None:
            return None
        owner = tp.owner_plan
        return PlanCatalogEntry(
            code=tp.code,
            name=tp.name or owner.name,
            currency=owner.currency.upper(),
            owner_plan_code=owner.code,
            owner_price_month=owner.price_month,
            owner_price_year=owner.price_year,
            resell_price_month=tp.resell_price_month,
            resell_price_year=tp.resell_price_year,
            margin_mode=tp.margin_mode or None,
            margin_value=tp.margin_value,
            active=tp.active and owner.active,
        )
