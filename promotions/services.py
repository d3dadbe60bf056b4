"""
Promo code validation, discount math and redemption.

Checkout applies a single discount: a promo code replaces the early-bird
discount only when it is strictly larger. Redemptions are counted with a
guarded UPDATE, so two checkouts racing for the last use of a code cannot
both succeed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.db.models import F, Q
from django.utils import timezone

from core.exceptions import InvalidPromoCode
from payments.schedule import round_currency

from .models import PromoCode, PromoCodeRedemption, normalize_code

logger = logging.getLogger(__name__)

SOURCE_EARLY_BIRD = "early_bird"
SOURCE_PROMO_CODE = "promo_code"

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class BestDiscount:
    amount: Decimal
    source: Optional[str]
    early_bird_discount: Decimal
    promo_discount: Decimal
    promo_code: Optional[PromoCode] = None

    @property
    def promo_applied(self) -> bool:
        return self.source == SOURCE_PROMO_CODE


def calculate_promo_discount(base_price, promo: PromoCode) -> Decimal:
    """Percentage codes round to the cent; fixed codes never exceed the price."""
    base = round_currency(base_price)
    if promo.discount_type == PromoCode.TYPE_PERCENTAGE:
        return round_currency(base * Decimal(str(promo.discount_value)) / 100)
    return min(round_currency(promo.discount_value), base)


def check_promo_code(promo: PromoCode, retreat_id: int, room_id: Optional[int], order_amount=None, today=None) -> None:
    """Raise InvalidPromoCode when `promo` cannot be used for this order."""
    today = today or timezone.localdate()
    if not promo.is_active:
        raise InvalidPromoCode()
    if promo.valid_from and promo.valid_from > today:
        raise InvalidPromoCode("Promo code is not yet active")
    if promo.valid_until and promo.valid_until < today:
        raise InvalidPromoCode("Promo code has expired")
    if promo.max_uses is not None and promo.current_uses >= promo.max_uses:
        raise InvalidPromoCode("Promo code usage limit reached")
    if promo.min_order_amount is not None and order_amount is not None and order_amount < promo.min_order_amount:
        raise InvalidPromoCode(
            f"Minimum order amount is {promo.min_order_amount}",
            min_order_amount=promo.min_order_amount,
        )
    if promo.scope == PromoCode.SCOPE_RETREAT and promo.retreat_id != retreat_id:
        raise InvalidPromoCode("Promo code is not valid for this retreat")
    if promo.scope == PromoCode.SCOPE_ROOM and (not room_id or promo.room_id != room_id):
        raise InvalidPromoCode("Promo code is not valid for this room")


def validate_promo_code(code: str, retreat, room=None, order_amount=None, today=None) -> PromoCode:
    """Look up an active code (case-insensitive) and check it against the order."""
    promo = PromoCode.objects.filter(code=normalize_code(code), is_active=True).first()
    if promo is None:
        raise InvalidPromoCode()
    check_promo_code(promo, retreat.pk, room.pk if room is not None else None, order_amount, today)
    return promo


def best_discount(base_price, early_bird_discount, promo: Optional[PromoCode] = None) -> BestDiscount:
    """
    Pick the larger of the early-bird and promo discounts. The promo code wins
    only when strictly larger; a tie keeps the early-bird discount.
    """
    early_bird_discount = round_currency(early_bird_discount or ZERO)
    promo_discount = calculate_promo_discount(base_price, promo) if promo is not None else ZERO

    if early_bird_discount == 0 and promo_discount == 0:
        return BestDiscount(ZERO, None, ZERO, ZERO)
    if promo_discount > early_bird_discount:
        return BestDiscount(promo_discount, SOURCE_PROMO_CODE, early_bird_discount, promo_discount, promo)
    return BestDiscount(early_bird_discount, SOURCE_EARLY_BIRD, early_bird_discount, promo_discount, promo)


def record_redemption(promo: PromoCode, booking, original_amount, discount_applied, final_amount) -> PromoCodeRedemption:
    """
    Count one use of `promo` for `booking`. Call inside the transaction that
    creates the booking: InvalidPromoCode here rolls the booking back.
    """
    used = (
        PromoCode.objects.filter(pk=promo.pk, is_active=True)
        .filter(Q(max_uses__isnull=True) | Q(current_uses__lt=F("max_uses")))
        .update(current_uses=F("current_uses") + 1, updated_at=timezone.now())
    )
    if not used:
        raise InvalidPromoCode(
            "Promo code usage limit reached. Please try again without the promo code.",
            promo_code=promo.code,
        )
    redemption = PromoCodeRedemption.objects.create(
        promo_code=promo,
        booking=booking,
        original_amount=original_amount,
        discount_applied=discount_applied,
        final_amount=final_amount,
    )
    logger.info("Promo code %s redeemed by booking %s (-%s)", promo.code, booking.booking_number, discount_applied)
    return redemption


def release_redemption(booking) -> bool:
    """Give a cancelled booking's promo code use back. Returns False if it had none."""
    redemption = PromoCodeRedemption.objects.filter(booking=booking).first()
    if redemption is None:
        return False
    PromoCode.objects.filter(pk=redemption.promo_code_id, current_uses__gt=0).update(
        current_uses=F("current_uses") - 1, updated_at=timezone.now()
    )
    redemption.delete()
    logger.info("Released promo code use of booking %s", booking.booking_number)
    return True


def promo_code_stats(promo: PromoCode) -> dict:
    redemptions = list(promo.redemptions.values_list("original_amount", "discount_applied"))
    total_discount = sum((d for _, d in redemptions), ZERO)
    total_revenue = sum((o - d for o, d in redemptions), ZERO)
    count = len(redemptions)
    return {
        "total_redemptions": count,
        "total_discount_given": total_discount,
        "total_revenue": total_revenue,
        "average_discount": round_currency(total_discount / count) if count else ZERO,
    }
