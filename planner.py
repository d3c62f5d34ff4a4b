# planner.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import logging
import re

from errors import PlannerError, SubmissionInProgress, ValidationError
from models import (
    CURRENCY_RE,
    Coin,
    CryptoBudget,
    FiatBudget,
    ItineraryResult,
    PlanForm,
    PlanResultView,
    SessionView,
)
from security import validate_destination, validate_interests
from services.budget import describe_budget, format_budget
from services.coin_directory import CoinDirectory
from services.coingecko_service import CoinGeckoService
from services.gemini_service import GENERIC_FAILURE, ItineraryService
from services.markdown_renderer import render, to_html

log = logging.getLogger("planner")

DURATION_RE = re.compile(r"^\d+(\.\d+)?$")

# largest budget the formatter is asked to render, and its finest fraction
MAX_AMOUNT = Decimal("1e40")
MAX_FRACTION_DIGITS = 18


class SubmissionState(str, Enum):
    IDLE = "idle"
    RESOLVING_PRICE = "resolving_price"
    GENERATING_PLAN = "generating_plan"
    DONE = "done"
    FAILED = "failed"


BUSY_LABELS = {
    SubmissionState.RESOLVING_PRICE: "Verifying price...",
    SubmissionState.GENERATING_PLAN: "Generating Plan...",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Submission:
    """A validated form, ready to dispatch."""
    destination: str
    duration_days: str
    interests: List[str]
    budget: Union[FiatBudget, CryptoBudget]


@dataclass
class PlanOutcome:
    budget_description: str
    result: ItineraryResult
    blocks: List[Any]


@dataclass
class PlannerSession:
    id: str
    state: SubmissionState = SubmissionState.IDLE
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)
    steps: List[Dict[str, Any]] = field(default_factory=list)  # {'seq', 'ts', 'msg'}
    form_error: Optional[str] = None
    result_error: Optional[str] = None
    selected_coin: Optional[Coin] = None
    outcome: Optional[PlanOutcome] = None

    # ---------- state ----------
    @property
    def busy(self) -> bool:
        return self.state in BUSY_LABELS

    @property
    def busy_label(self) -> Optional[str]:
        return BUSY_LABELS.get(self.state)

    def _progress(self, msg: str) -> None:
        self.steps.append({"seq": len(self.steps) + 1, "ts": _now(), "msg": msg})
        self.updated_at = _now()

    def _transition(self, state: SubmissionState, msg: str) -> None:
        log.info(f"{self.state.value} -> {state.value}: {msg}", extra={"session_id": self.id})
        self.state = state
        self._progress(msg)

    def select_coin(self, coin: Coin) -> None:
        self.selected_coin = coin
        self.form_error = None
        self.updated_at = _now()

    # ---------- validation ----------
    def validate(self, form: PlanForm, directory: Optional[CoinDirectory] = None) -> Submission:
        destination = validate_destination(form.destination)

        duration = form.duration.strip()
        if not duration:
            raise ValidationError("Please fill out the duration.")
        if not DURATION_RE.match(duration) or Decimal(duration) <= 0:
            raise ValidationError("Please enter a valid trip duration in days.")

        raw_amount = form.budget_amount.strip()
        if not raw_amount:
            raise ValidationError("Please enter a budget amount.")
        try:
            amount = Decimal(raw_amount)
        except InvalidOperation:
            raise ValidationError("Please enter a valid, positive budget amount.") from None
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Please enter a valid, positive budget amount.")
        if amount >= MAX_AMOUNT or amount.as_tuple().exponent < -MAX_FRACTION_DIGITS:
            raise ValidationError("Please enter a realistic budget amount.")

        interests = validate_interests(form.interests)

        budget: Union[FiatBudget, CryptoBudget]
        if form.budget_type == "fiat":
            currency = form.fiat_currency.strip().upper()
            if not CURRENCY_RE.match(currency):
                raise ValidationError("Please choose a valid currency.")
            budget = FiatBudget(amount=amount, currency_code=currency)
        else:
            coin = self._coin_for(form, directory)
            budget = CryptoBudget(amount=amount, coin=coin)

        return Submission(destination=destination, duration_days=duration, interests=interests, budget=budget)

    def _coin_for(self, form: PlanForm, directory: Optional[CoinDirectory]) -> Coin:
        if form.coin_id and form.coin_id.strip():
            coin = directory.find(form.coin_id) if directory is not None else None
            if coin is None:
                raise ValidationError("Please select a cryptocurrency from the list.")
            self.selected_coin = coin
            return coin
        if self.selected_coin is None:
            raise ValidationError("Please select a cryptocurrency.")
        return self.selected_coin

    # ---------- submission ----------
    def prepare(self, form: PlanForm, directory: Optional[CoinDirectory] = None) -> Submission:
        """
        Validate and enter the first busy state without awaiting anything,
        so a second submit is refused straight away.
        """
        if self.busy:
            raise SubmissionInProgress(f"session {self.id} is {self.state.value}")

        self.form_error = None
        try:
            submission = self.validate(form, directory)
        except ValidationError as e:
            self.form_error = e.user_message
            self.updated_at = _now()
            log.info("Form rejected", extra={"session_id": self.id, "reason": e.user_message})
            raise

        self.result_error = None
        self.outcome = None
        if isinstance(submission.budget, CryptoBudget):
            self._transition(SubmissionState.RESOLVING_PRICE, f"Verifying {submission.budget.coin.id} price")
        else:
            self._transition(SubmissionState.GENERATING_PLAN, "Generating plan")
        return submission

    async def run(self, submission: Submission, prices: CoinGeckoService, itineraries: ItineraryService) -> None:
        try:
            if isinstance(submission.budget, CryptoBudget):
                try:
                    description = await describe_budget(submission.budget, prices)
                except PlannerError as e:
                    log.warning("Price check failed: %s", e, extra={"session_id": self.id})
                    self.form_error = e.user_message
                    self._transition(SubmissionState.FAILED, "Price check failed")
                    return
                self._transition(SubmissionState.GENERATING_PLAN, "Price verified, generating plan")
            else:
                description = format_budget(submission.budget)

            try:
                result = await itineraries.generate(
                    submission.destination,
                    description,
                    submission.interests,
                    submission.duration_days,
                )
            except PlannerError as e:
                log.warning("Itinerary generation failed: %s", e, extra={"session_id": self.id})
                self.result_error = GENERIC_FAILURE
                self._transition(SubmissionState.FAILED, "Itinerary generation failed")
                return

            self.outcome = PlanOutcome(
                budget_description=description,
                result=result,
                blocks=render(result.text),
            )
            self._transition(SubmissionState.DONE, f"Itinerary ready ({len(result.sources)} sources)")
        finally:
            # cancelled or crashed mid-flight: never stay busy
            if self.busy:
                self.result_error = self.result_error or GENERIC_FAILURE
                self._transition(SubmissionState.FAILED, "Submission interrupted")

    async def submit(
        self,
        form: PlanForm,
        *,
        directory: Optional[CoinDirectory],
        prices: CoinGeckoService,
        itineraries: ItineraryService,
    ) -> None:
        submission = self.prepare(form, directory)
        await self.run(submission, prices, itineraries)

    # ---------- presentation ----------
    def view(self) -> SessionView:
        result = None
        if self.outcome is not None:
            result = PlanResultView(
                budget_description=self.outcome.budget_description,
                text=self.outcome.result.text,
                sources=self.outcome.result.sources,
                blocks=self.outcome.blocks,
                html=to_html(self.outcome.blocks),
            )
        return SessionView(
            session_id=self.id,
            state=self.state.value,
            busy=self.busy,
            busy_label=self.busy_label,
            form_error=self.form_error,
            result_error=self.result_error,
            selected_coin=self.selected_coin,
            result=result,
            steps=self.steps,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
