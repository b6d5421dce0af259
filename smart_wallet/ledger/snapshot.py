"""
Full-state export and import.

A snapshot is one JSON record, ``{profile, portfolios, expenses,
savingsBalance}``, using the same camelCase keys as the stored documents.
Import is all-or-nothing: the payload is validated and parsed completely
before it replaces anything.
"""

import json
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional, Union
import structlog

from .portfolio import Portfolio
from .savings import Expense
from .state import LedgerState, UserProfile
from ..exceptions import PersistenceError, ValidationError

logger = structlog.get_logger(__name__)

REQUIRED_KEYS = ("profile", "portfolios", "expenses", "savingsBalance")


def export_snapshot(state: LedgerState) -> Dict[str, Any]:
    """Serialize the full ledger state."""
    return {
        "profile": state.profile.to_dict(),
        "portfolios": [p.to_dict() for p in state.portfolios],
        "expenses": [e.to_dict() for e in state.expenses],
        "savingsBalance": state.savings_balance,
    }


def validate_snapshot(data: Any, active_email: Optional[str] = None) -> None:
    """
    Check a snapshot's shape before it is parsed.

    Args:
        data: Decoded snapshot
        active_email: Email of the signed-in account; when given, the
            snapshot's profile email must match it

    Raises:
        ValidationError: If a required key is missing or the account differs
    """
    if not isinstance(data, dict):
        raise ValidationError("Snapshot must be a JSON object", expected="object")

    missing = [key for key in REQUIRED_KEYS if data.get(key) is None]
    if missing:
        raise ValidationError(
            "Snapshot is missing required keys",
            field=", ".join(missing),
            expected=", ".join(REQUIRED_KEYS)
        )

    if not isinstance(data["portfolios"], list) or not isinstance(data["expenses"], list):
        raise ValidationError("Snapshot portfolios and expenses must be lists", field="portfolios/expenses")

    if not isinstance(data["profile"], dict):
        raise ValidationError("Snapshot profile must be an object", field="profile")

    if active_email:
        snapshot_email = (data["profile"].get("email") or "").strip().lower()
        if snapshot_email != active_email.strip().lower():
            raise ValidationError(
                "Snapshot belongs to a different account",
                field="profile.email",
                value=snapshot_email or None,
                expected=active_email
            )


def parse_snapshot(data: Any, active_email: Optional[str] = None) -> LedgerState:
    """
    Validate and parse a snapshot into a new ``LedgerState``.

    Raises:
        ValidationError: If the payload is malformed anywhere
    """
    validate_snapshot(data, active_email)

    try:
        savings_balance = float(data["savingsBalance"])
    except (TypeError, ValueError) as e:
        raise ValidationError("Savings balance must be a number", field="savingsBalance", cause=e)
    if savings_balance < 0:
        raise ValidationError("Savings balance cannot be negative", field="savingsBalance",
                              value=savings_balance, expected=">= 0")

    state = LedgerState(
        portfolios=[Portfolio.from_dict(p) for p in data["portfolios"]],
        expenses=[Expense.from_dict(e) for e in data["expenses"]],
        savings_balance=savings_balance,
        profile=UserProfile.from_dict(data["profile"]),
    )

    ids = [p.id for p in state.portfolios]
    if len(ids) != len(set(ids)):
        raise ValidationError("Snapshot contains duplicate portfolio ids", field="portfolios")

    return state


def backup_filename(on: Optional[date] = None) -> str:
    return f"smart-wallet-backup-{(on or date.today()).isoformat()}.json"


def write_backup(state: LedgerState, directory: Union[str, Path], on: Optional[date] = None) -> Path:
    """
    Write a snapshot to ``directory`` as a dated JSON file.

    Raises:
        PersistenceError: If the file cannot be written
    """
    path = Path(directory) / backup_filename(on)
    try:
        path.write_text(json.dumps(export_snapshot(state), ensure_ascii=False, indent=2), encoding="utf-8")
    except OSError as e:
        raise PersistenceError("Failed to write backup", operation="export", cause=e)

    logger.info("backup_written", path=str(path), portfolios=len(state.portfolios))
    return path


def read_backup(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a snapshot file without applying it.

    Raises:
        PersistenceError: If the file cannot be read
        ValidationError: If the file is not valid JSON
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise PersistenceError("Failed to read backup", operation="import", cause=e)
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError("Backup file is not valid JSON", field="file", value=str(path), cause=e)
