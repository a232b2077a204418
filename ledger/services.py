"""
Ledger — Service Layer

MovementEngine executes every custody transfer (manufacture, ship, sale,
return, disposal, recall, transfer) as one ledger_transaction: lock the
Batch / InventoryPosition rows, check preconditions, apply the change in
memory, run the ConsistencyGuard, then write balances and append the
MovementRecord. INSERT ONLY: MovementRecord is never updated or deleted.

Read side: trace, TraceabilityService (custody chain with party labels),
InventorySnapshotService (search feed) and ReconciliationService (replay
the log against the cached balances). PurchaseAnalyticsService rolls
purchases up into per-period sales figures.

@file ledger/services.py
"""

import datetime
import io
import json
import logging
from collections import defaultdict
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from uuid import UUID

import qrcode
from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, models, transaction
from django.db.models import Avg, Count, Sum
from django.db.models.functions import TruncDay, TruncHour, TruncMonth, TruncWeek
from django.utils import timezone
from django.utils.dateparse import parse_date

from catalog.models import Product
from catalog.schemas import validate_lab_results
from catalog.services import ProductCatalog
from core.constants import AUDIT_ACTION_STATUS_CHANGE, AUDIT_ACTION_UPDATE
from core.exceptions import (
    DuplicateResourceError,
    InsufficientQuantityError,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from core.services import AuditService
from parties.models import PartyType, VerificationStatus
from parties.services import PartyDirectory, PartyRef

from .guards import ConsistencyGuard
from .locking import ledger_transaction, lock_rows
from .models import Batch, InventoryPosition, MovementRecord, Purchase, PurchaseItem
from .schemas import validate_movement_metadata, validate_order_metadata

logger = logging.getLogger('quittrace')

M = MovementRecord.MovementType
CENT = Decimal('0.01')


# ---------------------------------------------------------------------------
# Typed inputs / results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LineItem:
    """One purchase line. use_reservation consumes previously reserved stock."""

    product_id: UUID
    batch_id: UUID
    quantity: int
    unit_price: Decimal
    use_reservation: bool = False


@dataclass(frozen=True)
class CustodyStep:
    sequence: int
    movement_id: UUID
    movement_type: str
    quantity: int
    unit_price: Decimal | None
    source: PartyRef
    source_label: str
    destination: PartyRef
    destination_label: str
    timestamp: datetime.datetime
    notes: str = ''


@dataclass(frozen=True)
class CustodyChain:
    batch_id: UUID
    batch_reference: str
    batch_number: str
    product_id: UUID
    product_name: str
    sku: str
    manufacturer_label: str
    manufacture_date: datetime.date
    expiry_date: datetime.date
    quantity_produced: int
    quantity_available: int
    is_expired: bool
    is_recalled: bool
    steps: list[CustodyStep]


@dataclass(frozen=True)
class StockSnapshotRow:
    product_id: UUID
    batch_id: UUID
    batch_reference: str
    retailer_id: UUID
    quantity: int
    price: Decimal
    expiry_date: datetime.date


@dataclass
class ReconciliationReport:
    """Replay result for one batch; drift maps retailer_id -> (expected, actual)."""

    batch_id: UUID
    batch_reference: str
    quantity_produced: int
    expected_available: int
    actual_available: int
    position_drift: dict = field(default_factory=dict)
    conservation_holds: bool = True

    @property
    def is_consistent(self) -> bool:
        return (
            self.expected_available == self.actual_available
            and not self.position_drift
            and self.conservation_holds
        )


@dataclass(frozen=True)
class SalesPeriod:
    period: datetime.datetime
    transaction_count: int
    total_revenue: Decimal
    unique_customers: int
    average_order_value: Decimal


# ---------------------------------------------------------------------------
# Input normalisation
# ---------------------------------------------------------------------------

def _positive_quantity(value, field_name: str = 'quantity') -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(detail={field_name: ['Expected a whole number.']})
    if value <= 0:
        raise ValidationError(detail={field_name: ['Quantity must be positive.']})
    return value


def _amount(value, field_name: str, *, allow_zero: bool = False) -> Decimal:
    try:
        amount = Decimal(str(value)).quantize(CENT)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(detail={field_name: ['Expected a decimal amount.']})
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(detail={field_name: ['Amount must be positive.']})
    return amount


def _as_date(value, field_name: str) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        parsed = parse_date(value) if isinstance(value, str) else None
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError(detail={field_name: ['Expected an ISO date (YYYY-MM-DD).']})
    return parsed


_UUID_FIELD = models.UUIDField()


def _as_uuid(value, field_name: str) -> UUID:
    """Coerce an id the way UUIDField lookups do (UUID, hex string or int)."""
    try:
        parsed = _UUID_FIELD.to_python(value)
    except DjangoValidationError:
        parsed = None
    if parsed is None:
        raise ValidationError(detail={field_name: ['Expected a UUID.']})
    return parsed


def _as_line_item(item) -> LineItem:
    if isinstance(item, LineItem):
        return LineItem(
            product_id=_as_uuid(item.product_id, 'product_id'),
            batch_id=_as_uuid(item.batch_id, 'batch_id'),
            quantity=item.quantity,
            unit_price=item.unit_price,
            use_reservation=item.use_reservation,
        )
    try:
        return LineItem(
            product_id=_as_uuid(item['product_id'], 'product_id'),
            batch_id=_as_uuid(item['batch_id'], 'batch_id'),
            quantity=item['quantity'],
            unit_price=item['unit_price'],
            use_reservation=bool(item.get('use_reservation', False)),
        )
    except (KeyError, TypeError):
        raise ValidationError(
            detail={'items': ['Each item needs product_id, batch_id, quantity and unit_price.']},
        )


# ---------------------------------------------------------------------------
# Locking and write helpers
# ---------------------------------------------------------------------------

def _lock_batch(batch_id, using: str) -> Batch:
    try:
        rows = lock_rows(Batch.objects.select_related('product').filter(pk=batch_id), using)
    except (DjangoValidationError, ValueError):
        rows = []
    if not rows:
        raise NotFoundError(detail=f'Batch {batch_id} not found.')
    return rows[0]


def _get_batch(batch_id, using: str) -> Batch:
    try:
        return Batch.objects.using(using).select_related('product').get(pk=batch_id)
    except (Batch.DoesNotExist, DjangoValidationError, ValueError):
        raise NotFoundError(detail=f'Batch {batch_id} not found.')


def _require_movable(batch: Batch) -> None:
    """Expired or recalled batches cannot be shipped, sold or transferred."""
    if batch.is_recalled:
        raise ValidationError(detail=f'Batch {batch.reference} has been recalled.')
    if batch.is_expired:
        raise ValidationError(detail=f'Batch {batch.reference} expired on {batch.expiry_date}.')


def _active_party(party_type: str, party_id, using: str):
    party = PartyDirectory.get(party_type, party_id, using=using)
    PartyDirectory.require_active(party)
    return party


def _owner(batch: Batch, using: str, *, require_active: bool = True):
    party = PartyDirectory.get(PartyType.MANUFACTURER, batch.product.manufacturer_id, using=using)
    if require_active:
        PartyDirectory.require_active(party)
    return party


def _take_from_position(position: InventoryPosition | None, quantity: int, *, use_reservation=False) -> None:
    if position is None:
        raise InsufficientQuantityError(detail=f'Retailer holds no stock of this batch (requested {quantity}).')
    if use_reservation:
        if quantity > position.quantity_reserved:
            raise InsufficientQuantityError(
                detail=f'Insufficient reserved stock: reserved={position.quantity_reserved}, requested={quantity}.',
            )
        position.quantity_reserved -= quantity
    elif quantity > position.quantity_sellable:
        raise InsufficientQuantityError(
            detail=f'Insufficient stock: sellable={position.quantity_sellable}, requested={quantity}.',
        )
    position.quantity_in_stock -= quantity


def _receiving_position(positions: Iterable[InventoryPosition], *, retailer, batch: Batch, price: Decimal):
    """Existing (locked) position of the retailer for the batch, or a new one."""
    for position in positions:
        if position.retailer_id == retailer.pk:
            return position
    return InventoryPosition(
        retailer=retailer,
        product_id=batch.product_id,
        batch=batch,
        quantity_in_stock=0,
        quantity_reserved=0,
        price=price,
    )


def _movement(kind, batch: Batch, *, source: PartyRef, destination: PartyRef, quantity: int,
              unit_price: Decimal | None = None, actor=None, reference=None, notes: str = '',
              metadata=None) -> MovementRecord:
    reference_type, reference_id = reference or ('', None)
    return MovementRecord(
        movement_type=kind,
        product_id=batch.product_id,
        batch=batch,
        source_type=source.party_type,
        source_id=source.party_id,
        destination_type=destination.party_type,
        destination_id=destination.party_id,
        quantity=quantity,
        unit_price=unit_price,
        total_value=(unit_price * quantity) if unit_price is not None else None,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes or '',
        metadata=validate_movement_metadata(metadata),
        created_by=actor,
        created_at=timezone.now(),
    )


def _sale_metadata(line: int, pos_transaction_id: str, payment_method: str) -> dict:
    metadata = {'line': line}
    if pos_transaction_id:
        metadata['pos_transaction_id'] = pos_transaction_id
    if payment_method:
        metadata['payment_method'] = payment_method
    return metadata


def _commit(*, using: str, actor=None, batches=(), positions=(), movements=(), locked_produced=None) -> None:
    """Guard the in-memory state, then write balances and append movements."""
    ConsistencyGuard.verify(
        using=using,
        batches=batches,
        positions=positions,
        movements=movements,
        locked_produced=locked_produced,
    )
    for batch in batches:
        batch.updated_by = actor
        batch.save(
            using=using,
            update_fields=['quantity_available', 'recalled_at', 'recall_reason', 'updated_by', 'updated_at'],
        )
    for position in positions:
        if position._state.adding:
            position.created_by = actor
        position.updated_by = actor
        position.save(using=using)
    for movement in movements:
        movement.save(using=using)
        AuditService.log_movement(movement, actor=actor, using=using)


def _ref(party_type: str, party_id) -> PartyRef:
    return PartyRef(party_type, party_id)


def _label_payload(batch: Batch, product: Product) -> dict:
    base_url = getattr(settings, 'LEDGER_TRACE_BASE_URL', '/api/v1/ledger/trace').rstrip('/')
    return {
        'reference': batch.reference,
        'sku': product.sku,
        'batch_number': batch.batch_number,
        'expiry_date': batch.expiry_date.isoformat(),
        'trace_url': f'{base_url}/{batch.reference}/',
    }


# ---------------------------------------------------------------------------
# Movement Engine
# ---------------------------------------------------------------------------

class MovementEngine:
    """Atomic custody transfers. Every method runs in one ledger_transaction on `using`."""

    @staticmethod
    def record_manufacture(
        *,
        product_id,
        batch_number: str,
        manufacture_date,
        expiry_date,
        quantity_produced: int,
        lab_test_results=None,
        actor=None,
        using: str | None = None,
    ) -> Batch:
        """
        Create a Batch with quantity_available = quantity_produced and append
        the genesis `manufacture` record (manufacturer -> same manufacturer).
        """
        quantity = _positive_quantity(quantity_produced, 'quantity_produced')
        manufacture_date = _as_date(manufacture_date, 'manufacture_date')
        expiry_date = _as_date(expiry_date, 'expiry_date')
        if expiry_date <= manufacture_date:
            raise ValidationError(detail={'expiry_date': ['Expiry date must be after manufacture date.']})
        batch_number = (batch_number or '').strip()
        if not batch_number:
            raise ValidationError(detail={'batch_number': ['This field is required.']})
        lab_test_results = validate_lab_results(lab_test_results)

        with ledger_transaction(using) as using:
            product = ProductCatalog.get(product_id, using=using)
            if product.status == Product.StatusChoices.DISCONTINUED:
                raise ValidationError(detail=f'Product {product.sku} is discontinued.')
            manufacturer = _active_party(PartyType.MANUFACTURER, product.manufacturer_id, using)

            if Batch.objects.using(using).filter(product=product, batch_number=batch_number).exists():
                raise DuplicateResourceError(detail=f'Batch {batch_number} already exists for {product.sku}.')

            batch = Batch(
                product=product,
                batch_number=batch_number,
                manufacture_date=manufacture_date,
                expiry_date=expiry_date,
                quantity_produced=quantity,
                quantity_available=quantity,
                lab_test_results=lab_test_results,
            )
            batch.qr_code_data = _label_payload(batch, product)
            batch.created_by = actor
            batch.updated_by = actor
            ConsistencyGuard.check_batch(batch)
            try:
                with transaction.atomic(using=using):
                    batch.save(using=using)
            except IntegrityError:
                raise DuplicateResourceError(detail=f'Batch {batch_number} already exists for {product.sku}.')

            owner = _ref(PartyType.MANUFACTURER, manufacturer.pk)
            movement = _movement(
                M.MANUFACTURE, batch,
                source=owner, destination=owner,
                quantity=quantity, actor=actor,
            )
            _commit(using=using, actor=actor, movements=[movement])

        logger.info(
            'Manufacture batch=%s (%s) product=%s qty=%s by manufacturer %s',
            batch.reference, batch.pk, product.pk, quantity, manufacturer.pk,
        )
        return batch

    @staticmethod
    def ship_to_retailer(
        *,
        batch_id,
        retailer_id,
        quantity: int,
        unit_price,
        notes: str = '',
        actor=None,
        using: str | None = None,
    ) -> MovementRecord:
        """
        Check-and-decrement under a row lock on the Batch: availability
        down, the retailer's position up (created on first receipt, price
        refreshed), one `ship_to_retailer` record appended.
        """
        quantity = _positive_quantity(quantity)
        unit_price = _amount(unit_price, 'unit_price')

        with ledger_transaction(using) as using:
            retailer = _active_party(PartyType.RETAILER, retailer_id, using)
            batch = _lock_batch(batch_id, using)
            manufacturer = _owner(batch, using)
            _require_movable(batch)
            if quantity > batch.quantity_available:
                raise InsufficientQuantityError(
                    detail=f'Insufficient batch quantity: available={batch.quantity_available}, requested={quantity}.',
                )
            locked_produced = {batch.pk: batch.quantity_produced}

            existing = lock_rows(
                InventoryPosition.objects.filter(retailer=retailer, product_id=batch.product_id, batch=batch),
                using,
            )
            position = _receiving_position(existing, retailer=retailer, batch=batch, price=unit_price)
            batch.quantity_available -= quantity
            position.quantity_in_stock += quantity
            position.price = unit_price
            position.is_active = True
            position.last_restocked = timezone.now()

            movement = _movement(
                M.SHIP_TO_RETAILER, batch,
                source=_ref(PartyType.MANUFACTURER, manufacturer.pk),
                destination=_ref(PartyType.RETAILER, retailer.pk),
                quantity=quantity, unit_price=unit_price, actor=actor, notes=notes,
            )
            _commit(
                using=using, actor=actor,
                batches=[batch], positions=[position], movements=[movement],
                locked_produced=locked_produced,
            )

        logger.info(
            'Ship batch=%s qty=%s retailer=%s remaining=%s',
            batch.reference, quantity, retailer.pk, batch.quantity_available,
        )
        return movement

    @staticmethod
    def sell_to_consumer(
        *,
        retailer_id,
        line_items: Iterable,
        consumer_id=None,
        payment_method: str = '',
        pos_transaction_id: str = '',
        order_metadata=None,
        ip_address: str | None = None,
        user_agent: str = '',
        actor=None,
        using: str | None = None,
    ) -> Purchase:
        """
        All-or-nothing purchase: lock every touched position (primary-key
        order), decrement each line, append one `sale_to_consumer` record
        per line, create the Purchase and its items. Any failing line aborts
        the whole purchase. consumer_id=None records an anonymous buyer.
        """
        items = [_as_line_item(item) for item in line_items]
        if not items:
            raise ValidationError(detail={'items': ['At least one line item is required.']})
        order_metadata = validate_order_metadata(order_metadata)
        items = [
            LineItem(
                product_id=item.product_id,
                batch_id=item.batch_id,
                quantity=_positive_quantity(item.quantity),
                unit_price=_amount(item.unit_price, 'unit_price', allow_zero=True),
                use_reservation=item.use_reservation,
            )
            for item in items
        ]

        with ledger_transaction(using) as using:
            retailer = _active_party(PartyType.RETAILER, retailer_id, using)
            if consumer_id is not None:
                consumer_id = PartyDirectory.get(PartyType.CONSUMER, consumer_id, using=using).pk

            batch_ids = {item.batch_id for item in items}
            try:
                batches = {
                    batch.pk: batch
                    for batch in Batch.objects.using(using).filter(pk__in=batch_ids)
                }
                positions = {
                    position.batch_id: position
                    for position in lock_rows(
                        InventoryPosition.objects.filter(retailer=retailer, batch_id__in=batch_ids),
                        using,
                    )
                }
            except (DjangoValidationError, ValueError):
                raise NotFoundError(detail='One or more batches not found.')

            purchase = Purchase(
                retailer=retailer,
                consumer_id=consumer_id,
                total_amount=Decimal('0'),
                payment_method=payment_method or '',
                pos_transaction_id=pos_transaction_id or '',
                order_metadata=order_metadata,
                ip_address=ip_address,
                user_agent=user_agent or '',
            )
            purchase.created_by = actor
            now = timezone.now()
            total = Decimal('0.00')
            touched, movements, purchase_items = {}, [], []

            for line, item in enumerate(items, start=1):
                batch = batches.get(item.batch_id)
                if batch is None:
                    raise NotFoundError(detail=f'Batch {item.batch_id} not found.')
                if batch.product_id != item.product_id:
                    raise ValidationError(detail=f'Batch {batch.reference} does not belong to product {item.product_id}.')
                _require_movable(batch)

                position = positions.get(batch.pk)
                _take_from_position(position, item.quantity, use_reservation=item.use_reservation)
                position.last_sold = now
                touched[position.pk] = position

                line_total = item.unit_price * item.quantity
                total += line_total
                purchase_items.append(PurchaseItem(
                    purchase=purchase,
                    product_id=batch.product_id,
                    batch=batch,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=line_total,
                ))
                movements.append(_movement(
                    M.SALE_TO_CONSUMER, batch,
                    source=_ref(PartyType.RETAILER, retailer.pk),
                    destination=_ref(PartyType.CONSUMER, consumer_id),
                    quantity=item.quantity, unit_price=item.unit_price, actor=actor,
                    reference=('Purchase', purchase.pk),
                    metadata=_sale_metadata(line, pos_transaction_id, payment_method),
                ))

            purchase.total_amount = total
            _commit(using=using, actor=actor, positions=list(touched.values()), movements=movements)
            purchase.save(using=using)
            for purchase_item in purchase_items:
                purchase_item.save(using=using)

        logger.info(
            'Sale purchase=%s retailer=%s lines=%s total=%s consumer=%s',
            purchase.pk, retailer.pk, len(items), total, consumer_id or 'anonymous',
        )
        return purchase

    @staticmethod
    def return_to_manufacturer(
        *,
        batch_id,
        retailer_id,
        quantity: int,
        notes: str = '',
        actor=None,
        using: str | None = None,
    ) -> MovementRecord:
        """Unreserved retailer stock goes back to the manufacturer pool."""
        quantity = _positive_quantity(quantity)

        with ledger_transaction(using) as using:
            retailer = PartyDirectory.get(PartyType.RETAILER, retailer_id, using=using)
            batch = _lock_batch(batch_id, using)
            manufacturer = _owner(batch, using, require_active=False)
            locked_produced = {batch.pk: batch.quantity_produced}
            positions = lock_rows(InventoryPosition.objects.filter(retailer=retailer, batch=batch), using)
            position = positions[0] if positions else None

            _take_from_position(position, quantity)
            batch.quantity_available += quantity

            movement = _movement(
                M.RETURN, batch,
                source=_ref(PartyType.RETAILER, retailer.pk),
                destination=_ref(PartyType.MANUFACTURER, manufacturer.pk),
                quantity=quantity, actor=actor, notes=notes,
            )
            _commit(
                using=using, actor=actor,
                batches=[batch], positions=[position], movements=[movement],
                locked_produced=locked_produced,
            )

        logger.info('Return batch=%s qty=%s retailer=%s -> manufacturer', batch.reference, quantity, retailer.pk)
        return movement

    @staticmethod
    def accept_consumer_return(
        *,
        retailer_id,
        batch_id,
        quantity: int,
        consumer_id=None,
        notes: str = '',
        actor=None,
        using: str | None = None,
    ) -> MovementRecord:
        """
        Consumer brings units back to the retailer that sold them. Capped by
        what the retailer has sold from the batch net of earlier returns.
        """
        quantity = _positive_quantity(quantity)

        with ledger_transaction(using) as using:
            retailer = PartyDirectory.get(PartyType.RETAILER, retailer_id, using=using)
            if consumer_id is not None:
                consumer_id = PartyDirectory.get(PartyType.CONSUMER, consumer_id, using=using).pk
            batch = _get_batch(batch_id, using)
            positions = lock_rows(InventoryPosition.objects.filter(retailer=retailer, batch=batch), using)
            if not positions:
                raise InsufficientQuantityError(detail='Retailer never held this batch.')
            position = positions[0]

            history = MovementRecord.objects.using(using).filter(batch=batch)
            sold = sum(history.filter(
                movement_type=M.SALE_TO_CONSUMER,
                source_type=PartyType.RETAILER, source_id=retailer.pk,
            ).values_list('quantity', flat=True))
            returned = sum(history.filter(
                movement_type=M.RETURN,
                source_type=PartyType.CONSUMER,
                destination_type=PartyType.RETAILER, destination_id=retailer.pk,
            ).values_list('quantity', flat=True))
            if quantity > sold - returned:
                raise InsufficientQuantityError(
                    detail=f'Return exceeds net quantity sold: sold={sold}, returned={returned}, requested={quantity}.',
                )

            position.quantity_in_stock += quantity
            movement = _movement(
                M.RETURN, batch,
                source=_ref(PartyType.CONSUMER, consumer_id),
                destination=_ref(PartyType.RETAILER, retailer.pk),
                quantity=quantity, actor=actor, notes=notes,
            )
            _commit(using=using, actor=actor, positions=[position], movements=[movement])

        logger.info('Consumer return batch=%s qty=%s retailer=%s', batch.reference, quantity, retailer.pk)
        return movement

    @staticmethod
    def record_disposal(
        *,
        batch_id,
        quantity: int,
        retailer_id=None,
        reason: str = '',
        actor=None,
        using: str | None = None,
    ) -> MovementRecord:
        """Destroy stock from the manufacturer pool, or from a retailer's position when retailer_id is given."""
        quantity = _positive_quantity(quantity)

        with ledger_transaction(using) as using:
            if retailer_id is None:
                batch = _lock_batch(batch_id, using)
                manufacturer = _owner(batch, using, require_active=False)
                if quantity > batch.quantity_available:
                    raise InsufficientQuantityError(
                        detail=f'Insufficient batch quantity: available={batch.quantity_available}, requested={quantity}.',
                    )
                batch.quantity_available -= quantity
                holder = _ref(PartyType.MANUFACTURER, manufacturer.pk)
                batches, positions = [batch], []
                locked_produced = {batch.pk: batch.quantity_produced}
            else:
                retailer = PartyDirectory.get(PartyType.RETAILER, retailer_id, using=using)
                batch = _get_batch(batch_id, using)
                rows = lock_rows(InventoryPosition.objects.filter(retailer=retailer, batch=batch), using)
                position = rows[0] if rows else None
                _take_from_position(position, quantity)
                holder = _ref(PartyType.RETAILER, retailer.pk)
                batches, positions = [], [position]
                locked_produced = None

            movement = _movement(
                M.DISPOSAL, batch,
                source=holder, destination=holder,
                quantity=quantity, actor=actor, notes=reason,
                metadata={'reason': reason} if reason else None,
            )
            _commit(
                using=using, actor=actor,
                batches=batches, positions=positions, movements=[movement],
                locked_produced=locked_produced,
            )

        logger.info('Disposal batch=%s qty=%s holder=%s:%s', batch.reference, quantity, holder.party_type, holder.party_id)
        return movement

    @staticmethod
    def recall_batch(
        *,
        batch_id,
        reason: str,
        actor=None,
        using: str | None = None,
    ) -> Batch:
        """
        Mark the batch recalled, pull every retailer's remaining stock back
        (`recall` retailer -> manufacturer, reservations cleared) and
        quarantine the manufacturer pool (`recall` self-loop). A batch can
        be recalled once.
        """
        reason = (reason or '').strip()
        if not reason:
            raise ValidationError(detail={'reason': ['A recall reason is required.']})

        with ledger_transaction(using) as using:
            batch = _lock_batch(batch_id, using)
            if batch.is_recalled:
                raise InvalidStateTransition(detail=f'Batch {batch.reference} is already recalled.')
            manufacturer = _owner(batch, using, require_active=False)
            owner = _ref(PartyType.MANUFACTURER, manufacturer.pk)
            locked_produced = {batch.pk: batch.quantity_produced}
            positions = lock_rows(InventoryPosition.objects.filter(batch=batch), using)

            movements = []
            for position in positions:
                if position.quantity_in_stock > 0:
                    movements.append(_movement(
                        M.RECALL, batch,
                        source=_ref(PartyType.RETAILER, position.retailer_id),
                        destination=owner,
                        quantity=position.quantity_in_stock, actor=actor, notes=reason,
                        metadata={'reason': reason},
                    ))
                position.quantity_in_stock = 0
                position.quantity_reserved = 0
                position.is_active = False
            if batch.quantity_available > 0:
                movements.append(_movement(
                    M.RECALL, batch,
                    source=owner, destination=owner,
                    quantity=batch.quantity_available, actor=actor, notes=reason,
                    metadata={'reason': reason},
                ))
                batch.quantity_available = 0
            batch.recalled_at = timezone.now()
            batch.recall_reason = reason

            _commit(
                using=using, actor=actor,
                batches=[batch], positions=positions, movements=movements,
                locked_produced=locked_produced,
            )
            AuditService.log(
                actor=actor,
                action=AUDIT_ACTION_STATUS_CHANGE,
                model_name='Batch',
                object_id=str(batch.pk),
                old_values={'recalled': False},
                new_values={'recalled': True, 'reason': reason},
                using=using,
            )

        logger.info(
            'Recall batch=%s positions=%s movements=%s reason=%s',
            batch.reference, len(positions), len(movements), reason,
        )
        return batch

    @staticmethod
    def transfer(
        *,
        batch_id,
        from_retailer_id,
        to_retailer_id,
        quantity: int,
        price=None,
        notes: str = '',
        actor=None,
        using: str | None = None,
    ) -> MovementRecord:
        """Move unreserved stock between two retailers' positions for one batch."""
        quantity = _positive_quantity(quantity)
        if str(from_retailer_id) == str(to_retailer_id):
            raise ValidationError(detail={'to_retailer_id': ['Source and destination retailer must differ.']})
        price = _amount(price, 'price') if price is not None else None

        with ledger_transaction(using) as using:
            source = _active_party(PartyType.RETAILER, from_retailer_id, using)
            destination = _active_party(PartyType.RETAILER, to_retailer_id, using)
            # Batch lock first serialises creation of the receiving position.
            batch = _lock_batch(batch_id, using)
            _require_movable(batch)
            rows = lock_rows(
                InventoryPosition.objects.filter(batch=batch, retailer_id__in=[source.pk, destination.pk]),
                using,
            )
            outgoing = next((row for row in rows if row.retailer_id == source.pk), None)
            _take_from_position(outgoing, quantity)
            incoming = _receiving_position(
                [row for row in rows if row.retailer_id == destination.pk],
                retailer=destination, batch=batch, price=price or outgoing.price,
            )
            incoming.quantity_in_stock += quantity
            incoming.is_active = True
            incoming.last_restocked = timezone.now()
            if price is not None:
                incoming.price = price

            movement = _movement(
                M.TRANSFER, batch,
                source=_ref(PartyType.RETAILER, source.pk),
                destination=_ref(PartyType.RETAILER, destination.pk),
                quantity=quantity, unit_price=price, actor=actor, notes=notes,
            )
            _commit(using=using, actor=actor, positions=[outgoing, incoming], movements=[movement])

        logger.info(
            'Transfer batch=%s qty=%s retailer %s -> %s',
            batch.reference, quantity, source.pk, destination.pk,
        )
        return movement

    @staticmethod
    def _adjust_reservation(position_id, delta: int, *, actor, using) -> InventoryPosition:
        with ledger_transaction(using) as using:
            try:
                rows = lock_rows(InventoryPosition.objects.filter(pk=position_id), using)
            except (DjangoValidationError, ValueError):
                rows = []
            if not rows:
                raise NotFoundError(detail=f'Inventory position {position_id} not found.')
            position = rows[0]

            old_reserved = position.quantity_reserved
            if delta > 0 and delta > position.quantity_sellable:
                raise InsufficientQuantityError(
                    detail=f'Cannot reserve {delta}: sellable={position.quantity_sellable}.',
                )
            if delta < 0 and -delta > position.quantity_reserved:
                raise InsufficientQuantityError(
                    detail=f'Cannot release {-delta}: reserved={position.quantity_reserved}.',
                )
            position.quantity_reserved += delta

            _commit(using=using, actor=actor, positions=[position])
            AuditService.log(
                actor=actor,
                action=AUDIT_ACTION_UPDATE,
                model_name='InventoryPosition',
                object_id=str(position.pk),
                old_values={'quantity_reserved': old_reserved},
                new_values={'quantity_reserved': position.quantity_reserved},
                using=using,
            )
        logger.info('Reservation position=%s %+d reserved=%s', position.pk, delta, position.quantity_reserved)
        return position

    @classmethod
    def reserve_stock(cls, *, position_id, quantity: int, actor=None, using: str | None = None):
        """Hold sellable stock for a pending order. Not a custody transfer: no movement is recorded."""
        return cls._adjust_reservation(position_id, _positive_quantity(quantity), actor=actor, using=using)

    @classmethod
    def release_reservation(cls, *, position_id, quantity: int, actor=None, using: str | None = None):
        return cls._adjust_reservation(position_id, -_positive_quantity(quantity), actor=actor, using=using)

    @staticmethod
    def trace(batch_reference: str, *, using: str | None = None):
        """
        Every movement of the batch in commit order (created_at, then id).
        Returns an unevaluated queryset: lazy, and re-iterable from the start.
        """
        batch = BatchLookup.by_reference(batch_reference, using=using)
        return (
            MovementRecord.objects.using(using)
            .filter(batch=batch)
            .in_commit_order()
        )


class BatchLookup:

    @staticmethod
    def by_reference(reference: str, *, using: str | None = None) -> Batch:
        reference = (reference or '').strip().upper()
        try:
            return Batch.objects.using(using).select_related('product').get(reference=reference)
        except Batch.DoesNotExist:
            raise NotFoundError(detail=f'Batch {reference} not found.')


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------

class TraceabilityService:
    """Human-readable custody chain for a batch."""

    @staticmethod
    def custody_chain(batch_reference: str, *, using: str | None = None) -> CustodyChain:
        batch = BatchLookup.by_reference(batch_reference, using=using)
        movements = list(MovementEngine.trace(batch.reference, using=using))

        owner = _ref(PartyType.MANUFACTURER, batch.product.manufacturer_id)
        refs = {owner}
        for movement in movements:
            refs.add(_ref(movement.source_type, movement.source_id))
            refs.add(_ref(movement.destination_type, movement.destination_id))
        labels = PartyDirectory.labels(refs, using=using)

        steps = []
        for sequence, movement in enumerate(movements, start=1):
            source = _ref(movement.source_type, movement.source_id)
            destination = _ref(movement.destination_type, movement.destination_id)
            steps.append(CustodyStep(
                sequence=sequence,
                movement_id=movement.uuid,
                movement_type=movement.movement_type,
                quantity=movement.quantity,
                unit_price=movement.unit_price,
                source=source,
                source_label=labels[source],
                destination=destination,
                destination_label=labels[destination],
                timestamp=movement.created_at,
                notes=movement.notes,
            ))

        return CustodyChain(
            batch_id=batch.pk,
            batch_reference=batch.reference,
            batch_number=batch.batch_number,
            product_id=batch.product_id,
            product_name=batch.product.product_name,
            sku=batch.product.sku,
            manufacturer_label=labels[owner],
            manufacture_date=batch.manufacture_date,
            expiry_date=batch.expiry_date,
            quantity_produced=batch.quantity_produced,
            quantity_available=batch.quantity_available,
            is_expired=batch.is_expired,
            is_recalled=batch.is_recalled,
            steps=steps,
        )


class InventorySnapshotService:
    """Read-only stock feed for search / proximity consumers."""

    @staticmethod
    def rows(*, product_id=None, retailer_id=None, using: str | None = None) -> Iterator[StockSnapshotRow]:
        """Sellable stock only: active, unexpired, unrecalled, verified-or-pending retailers."""
        qs = (
            InventoryPosition.objects.using(using)
            .filter(
                is_active=True,
                quantity_in_stock__gt=0,
                batch__expiry_date__gte=timezone.localdate(),
                batch__recalled_at__isnull=True,
                retailer__is_deleted=False,
                product__is_deleted=False,
            )
            .exclude(retailer__verification_status=VerificationStatus.SUSPENDED)
            .select_related('batch')
            .order_by('product_id', 'price', 'pk')
        )
        if product_id is not None:
            qs = qs.filter(product_id=product_id)
        if retailer_id is not None:
            qs = qs.filter(retailer_id=retailer_id)

        for position in qs.iterator():
            if position.quantity_sellable <= 0:
                continue
            yield StockSnapshotRow(
                product_id=position.product_id,
                batch_id=position.batch_id,
                batch_reference=position.batch.reference,
                retailer_id=position.retailer_id,
                quantity=position.quantity_sellable,
                price=position.discount_price or position.price,
                expiry_date=position.batch.expiry_date,
            )


def movement_effects(movement: MovementRecord) -> tuple[int, dict]:
    """
    Signed effect of one record: (delta on batch.quantity_available,
    {retailer_id: delta on that retailer's position}).
    """
    q = movement.quantity
    kind = movement.movement_type
    src_retailer = movement.source_type == PartyType.RETAILER
    dst_retailer = movement.destination_type == PartyType.RETAILER

    if kind == M.MANUFACTURE:
        return q, {}
    if kind == M.SHIP_TO_RETAILER:
        return -q, {movement.destination_id: q}
    if kind == M.SALE_TO_CONSUMER:
        return 0, {movement.source_id: -q}
    if kind == M.TRANSFER:
        return 0, {movement.source_id: -q, movement.destination_id: q}
    if kind == M.RETURN:
        if src_retailer:
            return q, {movement.source_id: -q}
        return 0, {movement.destination_id: q}
    if kind in (M.DISPOSAL, M.RECALL):
        if src_retailer:
            return 0, {movement.source_id: -q}
        return -q, {}
    if dst_retailer:
        return 0, {movement.destination_id: q}
    return 0, {}


class ReconciliationService:
    """Replays the movement log and compares it with the cached balances."""

    @staticmethod
    def reconcile_batch(batch_id, *, using: str | None = None) -> ReconciliationReport:
        # Lock batch and positions so the replay and the balances come from one instant.
        with ledger_transaction(using) as using:
            batch = _lock_batch(batch_id, using)
            positions = lock_rows(InventoryPosition.objects.filter(batch=batch), using)

            expected_available = 0
            expected_positions = defaultdict(int)
            consumed = 0
            for movement in MovementRecord.objects.using(using).filter(batch=batch).in_commit_order().iterator():
                batch_delta, position_deltas = movement_effects(movement)
                expected_available += batch_delta
                for retailer_id, delta in position_deltas.items():
                    expected_positions[retailer_id] += delta
                if movement.movement_type == M.SALE_TO_CONSUMER:
                    consumed += movement.quantity
                elif movement.movement_type == M.RETURN and movement.source_type == PartyType.CONSUMER:
                    consumed -= movement.quantity
                elif movement.movement_type in (M.DISPOSAL, M.RECALL):
                    consumed += movement.quantity

        actual_positions = {position.retailer_id: position.quantity_in_stock for position in positions}
        drift = {}
        for retailer_id in set(expected_positions) | set(actual_positions):
            expected = expected_positions.get(retailer_id, 0)
            actual = actual_positions.get(retailer_id, 0)
            if expected != actual:
                drift[retailer_id] = (expected, actual)

        conservation = batch.quantity_produced == (
            batch.quantity_available + sum(actual_positions.values()) + consumed
        )
        return ReconciliationReport(
            batch_id=batch.pk,
            batch_reference=batch.reference,
            quantity_produced=batch.quantity_produced,
            expected_available=expected_available,
            actual_available=batch.quantity_available,
            position_drift=drift,
            conservation_holds=conservation,
        )

    @classmethod
    def reconcile_all(cls, *, using: str | None = None) -> list[ReconciliationReport]:
        """Reconcile every batch, one short transaction each. Returns the drifted reports."""
        drifted = []
        batch_ids = list(Batch.objects.using(using).order_by('pk').values_list('pk', flat=True))
        for batch_id in batch_ids:
            report = cls.reconcile_batch(batch_id, using=using)
            if not report.is_consistent:
                logger.error(
                    'Reconciliation drift batch=%s available expected=%s actual=%s positions=%s conservation=%s',
                    report.batch_reference, report.expected_available, report.actual_available,
                    report.position_drift, report.conservation_holds,
                )
                drifted.append(report)
        return drifted


class PurchaseAnalyticsService:
    """
    Sales rollups over Purchase, bucketed on purchased_at in the active
    time zone. Both window dates are inclusive. unique_customers counts
    named consumers only; anonymous purchases still count as transactions.
    """

    GROUPINGS = {
        'hour': TruncHour,
        'day': TruncDay,
        'week': TruncWeek,
        'month': TruncMonth,
    }

    @classmethod
    def sales(
        cls,
        *,
        start_date,
        end_date,
        group_by: str = 'day',
        retailer_id=None,
        using: str | None = None,
    ) -> list[SalesPeriod]:
        trunc = cls.GROUPINGS.get(group_by)
        if trunc is None:
            raise ValidationError(detail={'group_by': [f'Expected one of: {", ".join(cls.GROUPINGS)}.']})
        start = _as_date(start_date, 'start_date')
        end = _as_date(end_date, 'end_date')
        if end < start:
            raise ValidationError(detail={'end_date': ['Must not be before start_date.']})

        tz = timezone.get_current_timezone()
        window_start = datetime.datetime.combine(start, datetime.time.min, tzinfo=tz)
        window_end = datetime.datetime.combine(end + datetime.timedelta(days=1), datetime.time.min, tzinfo=tz)

        qs = Purchase.objects.using(using).filter(
            purchased_at__gte=window_start, purchased_at__lt=window_end,
        )
        if retailer_id is not None:
            qs = qs.filter(retailer_id=_as_uuid(retailer_id, 'retailer_id'))

        rows = (
            qs.annotate(period=trunc('purchased_at'))
            .values('period')
            .annotate(
                transaction_count=Count('id', distinct=True),
                total_revenue=Sum('total_amount'),
                unique_customers=Count('consumer_id', distinct=True),
                average_order_value=Avg('total_amount'),
            )
            .order_by('period')
        )
        return [
            SalesPeriod(
                period=row['period'],
                transaction_count=row['transaction_count'],
                total_revenue=_money(row['total_revenue']),
                unique_customers=row['unique_customers'],
                average_order_value=_money(row['average_order_value']),
            )
            for row in rows
        ]


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


class BatchLabelService:

    @staticmethod
    def render_qr_png(batch: Batch) -> bytes:
        """PNG of the label QR, encoding the batch's qr_code_data."""
        data = json.dumps(batch.qr_code_data or {'reference': batch.reference}, sort_keys=True)
        img = qrcode.make(data)
        buf = io.BytesIO()
        img.save(buf, format='PNG')
        return buf.getvalue()
