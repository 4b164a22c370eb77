"""
policy.py - Lending Policy Parameters

Every rule in the engine reads its numbers from a LendingPolicy. The defaults
are the fixed platform constants from core.py; a YAML file can override them:

    policy:
      min_loan_amount: 2000000
      interest_rate_bps: 300
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Tuple, Union

import yaml

from .core import (
    Tier, tier_for_score,
    INITIAL_SCORE, MAX_SCORE, MIN_LOAN_AMOUNT, MAX_LOAN_AMOUNT,
    LOAN_DURATION_SECONDS, INTEREST_RATE_BPS, STAKING_APY_BPS,
    ON_TIME_REPAYMENT_BONUS, STAKE_BONUS_UNIT,
    SCORE_LOAN_MULTIPLIER, SCORE_LOAN_DIVISOR, STAKE_LOAN_MULTIPLIER,
    WALLET_AGE_BONUS_DAYS,
    PLATINUM_THRESHOLD, GOLD_THRESHOLD, SILVER_THRESHOLD,
)
from .logging_config import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class LendingPolicy:
    """
    Immutable set of policy parameters.

    Attributes:
        initial_score: Base score granted at registration
        max_score: Score ceiling
        min_loan_amount: Smallest loan that may be originated
        max_loan_amount: Largest loan that may be originated
        loan_duration_seconds: Time from origination to due date
        interest_rate_bps: Flat interest in basis points
        staking_apy_bps: Reserved reward rate (unused)
        on_time_repayment_bonus: Score added for an on-time repayment
        stake_bonus_unit: Staked units per bonus score point
        score_loan_multiplier: Numerator of the score part of the loan ceiling
        score_loan_divisor: Denominator of the score part of the loan ceiling
        stake_loan_multiplier: Borrowing power per staked unit
        wallet_age_bonus_days: Wallet-age days per bonus score point
        platinum_threshold / gold_threshold / silver_threshold: Tier lower bounds
    """
    initial_score: int = INITIAL_SCORE
    max_score: int = MAX_SCORE
    min_loan_amount: int = MIN_LOAN_AMOUNT
    max_loan_amount: int = MAX_LOAN_AMOUNT
    loan_duration_seconds: int = LOAN_DURATION_SECONDS
    interest_rate_bps: int = INTEREST_RATE_BPS
    staking_apy_bps: int = STAKING_APY_BPS
    on_time_repayment_bonus: int = ON_TIME_REPAYMENT_BONUS
    stake_bonus_unit: int = STAKE_BONUS_UNIT
    score_loan_multiplier: int = SCORE_LOAN_MULTIPLIER
    score_loan_divisor: int = SCORE_LOAN_DIVISOR
    stake_loan_multiplier: int = STAKE_LOAN_MULTIPLIER
    wallet_age_bonus_days: int = WALLET_AGE_BONUS_DAYS
    platinum_threshold: int = PLATINUM_THRESHOLD
    gold_threshold: int = GOLD_THRESHOLD
    silver_threshold: int = SILVER_THRESHOLD

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{f.name} must be an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"{f.name} cannot be negative, got {value}")
        for name in ("max_score", "min_loan_amount", "loan_duration_seconds",
                     "stake_bonus_unit", "score_loan_divisor", "wallet_age_bonus_days"):
            if getattr(self, name) == 0:
                raise ValueError(f"{name} must be positive")
        if self.min_loan_amount > self.max_loan_amount:
            raise ValueError(
                f"min_loan_amount {self.min_loan_amount} > max_loan_amount {self.max_loan_amount}"
            )
        if self.initial_score > self.max_score:
            raise ValueError(f"initial_score {self.initial_score} > max_score {self.max_score}")
        if not self.platinum_threshold > self.gold_threshold > self.silver_threshold:
            raise ValueError("tier thresholds must be strictly descending")

    @property
    def tier_thresholds(self) -> Tuple[int, int, int]:
        return (self.platinum_threshold, self.gold_threshold, self.silver_threshold)

    def tier_for(self, score: int) -> Tier:
        """Tier for a score under this policy's thresholds."""
        return tier_for_score(score, self.tier_thresholds)


DEFAULT_POLICY = LendingPolicy()


def _to_int(key: str, value: Any, default: int) -> int:
    """Convert value to int with a default fallback."""
    if isinstance(value, bool):
        logger.warning("Invalid integer value '%s' for %s. Using default=%s", value, key, default)
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer value '%s' for %s. Using default=%s", value, key, default)
        return default


def policy_from_mapping(data: Dict[str, Any]) -> LendingPolicy:
    """
    Build a policy from a plain mapping, ignoring unknown keys.

    Raises:
        ValueError: If the resulting parameters are inconsistent
    """
    known = {f.name: f.default for f in fields(LendingPolicy)}
    overrides = {}
    for key, value in (data or {}).items():
        if key not in known:
            logger.warning("Ignoring unknown policy key '%s'", key)
            continue
        overrides[key] = _to_int(key, value, known[key])
    return LendingPolicy(**overrides)


def load_policy(path: Union[str, Path]) -> LendingPolicy:
    """
    Load a policy from a YAML file with a top-level `policy:` mapping.

    A missing file yields the default policy.

    Raises:
        ValueError: If the file is malformed or the parameters are inconsistent
    """
    config_path = Path(path)
    try:
        with config_path.open("r", encoding="utf-8") as config_file:
            config_data = yaml.safe_load(config_file) or {}
    except FileNotFoundError:
        logger.warning("Policy file not found at %s. Falling back to defaults.", config_path)
        return DEFAULT_POLICY
    except yaml.YAMLError as exc:
        raise ValueError(f"Malformed policy file {config_path}: {exc}") from exc

    if not isinstance(config_data, dict):
        raise ValueError(f"Policy file {config_path} must contain a mapping")
    section = config_data.get("policy") or {}
    if not isinstance(section, dict):
        raise ValueError(f"'policy' in {config_path} must be a mapping")

    policy = policy_from_mapping(section)
    logger.info("Policy loaded from %s", config_path)
    return policy
