import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .domain import BalanceChange
from .exceptions import InsufficientFunds, NotFound, ValidationError
from .models import UserTransaction, Wallet
from .pricing import quantize_money

logger = logging.getLogger(__name__)


def _balance_after_update(user_id, signed_amount):
    # The UPDATE already holds the row lock for the rest of the transaction
    wallet = Wallet.objects.select_for_update().get(user_id=user_id)
    return BalanceChange(
        wallet_id=wallet.id,
        amount=signed_amount,
        balance_before=quantize_money(wallet.balance - signed_amount),
        balance_after=wallet.balance,
    )


@transaction.atomic
def debit(user_id, amount):
    """
    Take ``amount`` from the user's wallet in one conditional UPDATE.

    Raises InsufficientFunds when the balance does not cover it.
    """
    amount = quantize_money(amount)
    if amount < 0:
        raise ValidationError("Debit amount must not be negative")

    updated = Wallet.objects.filter(user_id=user_id, balance__gte=amount).update(
        balance=F('balance') - amount,
        updated_at=timezone.now(),
    )
    if not updated:
        if not Wallet.objects.filter(user_id=user_id).exists():
            raise NotFound("Wallet not found")
        raise InsufficientFunds(f"Insufficient balance: need {amount}")
    return _balance_after_update(user_id, -amount)


@transaction.atomic
def credit(user_id, amount):
    amount = quantize_money(amount)
    if amount < 0:
        raise ValidationError("Credit amount must not be negative")

    updated = Wallet.objects.filter(user_id=user_id).update(
        balance=F('balance') + amount,
        updated_at=timezone.now(),
    )
    if not updated:
        raise NotFound("Wallet not found")
    return _balance_after_update(user_id, amount)


def record_ledger(change, source, order=None, note=''):
    return UserTransaction.objects.create(
        wallet_id=change.wallet_id,
        amount=change.amount,
        source=source,
        status=UserTransaction.Status.POSTED,
        balance_before=change.balance_before,
        balance_after=change.balance_after,
        order=order,
        note=note,
    )


@transaction.atomic
def top_up(user, amount, note='Wallet top-up'):
    """Fund a wallet, creating it on first use, and log the TOPUP."""
    Wallet.objects.get_or_create(user=user)
    change = credit(user.id, amount)
    record_ledger(change, UserTransaction.Source.TOPUP, note=note)
    logger.info("Wallet %s topped up by %s", change.wallet_id, change.amount)
    return change
