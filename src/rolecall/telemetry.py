"""Usage telemetry: token counts and cost for one completed AI call.

Recording never raises. Accounting problems are logged and produce ``None``
so they cannot abort a call that already succeeded.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
import logging
from typing import TYPE_CHECKING, Any, Literal

from rolecall.costs import default_cost_table

if TYPE_CHECKING:
    from collections.abc import Callable

    from rolecall.costs import CostTable

logger = logging.getLogger(__name__)

OutputMode = Literal["cli", "mcp"]

_TOKENS_PER_UNIT = 1_000_000
_COST_PRECISION = 6


@dataclass(frozen=True)
class TelemetryRecord:
    """Usage and cost for one completed call."""

    timestamp: str
    user_id: str | None
    command_name: str
    provider_name: str
    model_id: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    total_cost: float
    currency: str

    def to_dict(self) -> dict[str, Any]:
        """Return the record under its wire field names."""
        return {
            "timestamp": self.timestamp,
            "userId": self.user_id,
            "commandName": self.command_name,
            "modelUsed": self.model_id,
            "providerName": self.provider_name,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.total_tokens,
            "totalCost": self.total_cost,
            "currency": self.currency,
        }


def compute_cost(
    input_tokens: int,
    output_tokens: int,
    *,
    input_cost_per_1m: float,
    output_cost_per_1m: float,
) -> float:
    """Return the cost of a call rounded to 6 decimal places."""
    total = (input_tokens / _TOKENS_PER_UNIT) * input_cost_per_1m + (
        output_tokens / _TOKENS_PER_UNIT
    ) * output_cost_per_1m
    return round(total, _COST_PRECISION)


def _utc_now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def log_ai_usage(
    *,
    user_id: str | None,
    command_name: str,
    provider_name: str,
    model_id: str,
    input_tokens: int | None,
    output_tokens: int | None,
    output_mode: OutputMode = "cli",
    cost_table: CostTable | None = None,
    debug: bool = False,
    clock: Callable[[], str] = _utc_now,
) -> TelemetryRecord | None:
    """Build a TelemetryRecord for a completed call.

    Missing token counts count as zero; models absent from the cost table
    cost nothing in USD. Returns None instead of raising on any failure.
    """
    try:
        table = cost_table if cost_table is not None else default_cost_table()
        inp = int(input_tokens or 0)
        out = int(output_tokens or 0)
        entry = table.lookup(provider_name, model_id)

        record = TelemetryRecord(
            timestamp=clock(),
            user_id=user_id,
            command_name=command_name,
            provider_name=provider_name,
            model_id=model_id,
            input_tokens=inp,
            output_tokens=out,
            total_tokens=inp + out,
            total_cost=compute_cost(
                inp,
                out,
                input_cost_per_1m=entry.input_cost_per_1m,
                output_cost_per_1m=entry.output_cost_per_1m,
            ),
            currency=entry.currency or "USD",
        )
        if debug and output_mode == "cli":
            logger.info("AI usage telemetry: %s", record.to_dict())
        else:
            logger.debug("AI usage telemetry: %s", record.to_dict())
        return record
    except Exception as e:
        logger.error("Failed to log AI usage telemetry: %s", e, exc_info=True)
        return None
