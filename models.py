from __future__ import annotations

import re
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union
from pydantic import (
    BaseModel,
    Field,
    ConfigDict,
    field_validator,
)

CURRENCY_RE = re.compile(r"^[A-Z]{3}$")

INTERESTS = [
    "History",
    "Art & Culture",
    "Food & Drink",
    "Nature",
    "Adventure",
    "Nightlife",
    "Shopping",
    "Relaxation",
    "Architecture",
    "Museums",
    "Beaches",
    "Local Markets",
]

FIAT_CURRENCIES = ["USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "CNY", "INR", "SGD"]

# -----------------------------
# Coins & budgets
# -----------------------------

class Coin(BaseModel):
    """One entry of the coin directory, e.g. {'id': 'bitcoin', 'symbol': 'btc', 'name': 'Bitcoin'}."""
    model_config = ConfigDict(frozen=True, extra="ignore")
    id: str
    symbol: str
    name: str

PositiveAmount = Annotated[Decimal, Field(gt=0, allow_inf_nan=False)]

class FiatBudget(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")
    kind: Literal["fiat"] = "fiat"
    amount: PositiveAmount
    currency_code: str = "USD"

    @field_validator("currency_code")
    @classmethod
    def _validate_currency(cls, v: str) -> str:
        if not CURRENCY_RE.match(v):
            raise ValueError("currency_code must be a 3-letter ISO code (e.g. USD, GBP, EUR)")
        return v

class CryptoBudget(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")
    kind: Literal["crypto"] = "crypto"
    amount: PositiveAmount
    coin: Coin

    @field_validator("coin")
    @classmethod
    def _coin_resolved(cls, v: Coin) -> Coin:
        if not v.id.strip():
            raise ValueError("a crypto budget needs a resolved coin")
        return v

BudgetSpec = Annotated[Union[FiatBudget, CryptoBudget], Field(discriminator="kind")]

# -----------------------------
# Itinerary
# -----------------------------

class ItinerarySource(BaseModel):
    model_config = ConfigDict(frozen=True)
    uri: str
    title: str

class ItineraryResult(BaseModel):
    text: str
    sources: List[ItinerarySource] = Field(default_factory=list)

# -----------------------------
# Display blocks (markdown subset)
# -----------------------------

class HeadingBlock(BaseModel):
    type: Literal["heading"] = "heading"
    text: str

class ListItemBlock(BaseModel):
    type: Literal["list_item"] = "list_item"
    text: str

class EmphasisLeadBlock(BaseModel):
    type: Literal["emphasis_lead"] = "emphasis_lead"
    bold: str
    rest: str

class SpacerBlock(BaseModel):
    type: Literal["spacer"] = "spacer"

class ParagraphBlock(BaseModel):
    type: Literal["paragraph"] = "paragraph"
    text: str

Block = Annotated[
    Union[HeadingBlock, ListItemBlock, EmphasisLeadBlock, SpacerBlock, ParagraphBlock],
    Field(discriminator="type"),
]

# -----------------------------
# Form & session views
# -----------------------------

class PlanForm(BaseModel):
    """Raw form fields as the browser sends them; checked by the planner, not here."""
    model_config = ConfigDict(extra="forbid")

    destination: str = ""
    duration: str = ""
    budget_amount: str = ""
    budget_type: Literal["fiat", "crypto"] = "fiat"
    fiat_currency: str = "USD"
    coin_id: Optional[str] = None
    interests: List[str] = Field(default_factory=list)

    @field_validator("duration", "budget_amount", mode="before")
    @classmethod
    def _numbers_as_text(cls, v):
        # <input type="number"> may arrive as a JSON number
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return "" if v is None else v

    @field_validator("interests", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return [] if v is None else v

class PlanResultView(BaseModel):
    budget_description: str
    text: str
    sources: List[ItinerarySource] = Field(default_factory=list)
    blocks: List[Block] = Field(default_factory=list)
    html: str = ""

class SessionStep(BaseModel):
    seq: int
    ts: str
    msg: str

class SessionView(BaseModel):
    session_id: str
    state: Literal["idle", "resolving_price", "generating_plan", "done", "failed"]
    busy: bool
    busy_label: Optional[str] = None
    form_error: Optional[str] = None
    result_error: Optional[str] = None
    selected_coin: Optional[Coin] = None
    result: Optional[PlanResultView] = None
    steps: List[SessionStep] = Field(default_factory=list)
    created_at: str
    updated_at: str

class CoinSearchResponse(BaseModel):
    coins: List[Coin]
    count: int
