"""
Account-wide ledger state.

``LedgerState`` is the unit the manager copies, mutates, validates and
persists: a mutation works on a deep copy and only replaces the live state
once the copy has been stored.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .portfolio import Portfolio, find_portfolio
from .savings import Expense
from ..exceptions import RecordNotFoundError

DEFAULT_PROFILE_NAME = "مستخدم جديد"


@dataclass
class UserProfile:
    """Profile details shown on the account page and stored in backups."""

    name: str = DEFAULT_PROFILE_NAME
    email: str = ""
    phone: str = ""
    country: str = ""
    city: str = ""
    avatar: str = ""  # base64 image

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "country": self.country,
            "city": self.city,
            "avatar": self.avatar,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "UserProfile":
        data = data or {}
        return cls(
            name=data.get("name") or DEFAULT_PROFILE_NAME,
            email=data.get("email") or "",
            phone=data.get("phone") or "",
            country=data.get("country") or "",
            city=data.get("city") or "",
            avatar=data.get("avatar") or "",
        )


@dataclass
class LedgerState:
    """Portfolios, expenses, savings balance and profile for one account."""

    portfolios: List[Portfolio] = field(default_factory=list)
    expenses: List[Expense] = field(default_factory=list)
    savings_balance: float = 0.0
    profile: UserProfile = field(default_factory=UserProfile)

    def copy(self) -> "LedgerState":
        return copy.deepcopy(self)

    def get_portfolio(self, portfolio_id: str) -> Portfolio:
        """
        Raises:
            RecordNotFoundError: If no portfolio has this id
        """
        portfolio = find_portfolio(self.portfolios, portfolio_id)
        if portfolio is None:
            raise RecordNotFoundError("Portfolio not found", kind="portfolio", record_id=portfolio_id)
        return portfolio
