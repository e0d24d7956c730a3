from pydantic import BaseModel, Field, field_validator

from leadpulse.components.aggregates import AggregateConfig, Granularity
from leadpulse.components.ingestion import IngestionConfig
from leadpulse.components.reconciler import ReconcilerConfig
from leadpulse.components.scoring import ScoringConfig
from leadpulse.core.entities import LeadSource


class ProjectRules(BaseModel):
    slug: str
    rules_version: str
    required_sections: list[str]


class BaseScores(BaseModel):
    direct: int = Field(100, ge=0, le=100)
    referral: int = Field(90, ge=0, le=100)
    social: int = Field(80, ge=0, le=100)
    unknown: int = Field(50, ge=0, le=100)


class ScoringRules(BaseModel):
    base_scores: BaseScores = BaseScores()
    decay_per_day: int = Field(1, ge=0)
    max_decay: int = Field(30, ge=0)
    points_per_link: int = Field(2, ge=0)
    max_engagement_bonus: int = Field(20, ge=0)

    def to_config(self) -> ScoringConfig:
        return ScoringConfig(
            base_scores={
                LeadSource.DIRECT: self.base_scores.direct,
                LeadSource.REFERRAL: self.base_scores.referral,
                LeadSource.SOCIAL: self.base_scores.social,
                LeadSource.UNKNOWN: self.base_scores.unknown,
            },
            decay_per_day=self.decay_per_day,
            max_decay=self.max_decay,
            points_per_link=self.points_per_link,
            max_engagement_bonus=self.max_engagement_bonus,
        )


class AppendRetryRules(BaseModel):
    max_attempts: int = Field(3, ge=1)
    backoff_seconds: list[float] = [0.05, 0.2, 0.5]


class IngestionRules(BaseModel):
    max_email_length: int = Field(254, ge=3)
    max_message_length: int = Field(2000, ge=0)
    max_future_skew_seconds: int = Field(60, ge=0)
    idempotency_window_seconds: int = Field(86400, ge=0)
    append_retry: AppendRetryRules = AppendRetryRules()
    bot_patterns: list[str] | None = None

    def to_config(self) -> IngestionConfig:
        defaults = IngestionConfig()
        return IngestionConfig(
            max_email_length=self.max_email_length,
            max_message_length=self.max_message_length,
            max_future_skew_seconds=self.max_future_skew_seconds,
            idempotency_window_seconds=self.idempotency_window_seconds,
            append_max_attempts=self.append_retry.max_attempts,
            append_backoff_seconds=tuple(self.append_retry.backoff_seconds),
            bot_patterns=(
                tuple(p.lower() for p in self.bot_patterns)
                if self.bot_patterns is not None
                else defaults.bot_patterns
            ),
        )


class AggregatesRules(BaseModel):
    granularities: list[Granularity] = [Granularity.DAY, Granularity.WEEK, Granularity.MONTH]

    @field_validator("granularities")
    @classmethod
    def _non_empty_unique(cls, v: list[Granularity]) -> list[Granularity]:
        if not v:
            raise ValueError("at least one granularity is required")
        if len(set(v)) != len(v):
            raise ValueError("granularities must be unique")
        return v

    def to_config(self) -> AggregateConfig:
        return AggregateConfig(granularities=tuple(self.granularities))


class ReconcilerRules(BaseModel):
    exclusive_timeout_seconds: float = Field(10.0, gt=0)
    poll_interval_seconds: float = Field(30.0, gt=0)
    batch_size: int = Field(50, ge=1)
    run_worker: bool = True

    def to_config(self) -> ReconcilerConfig:
        return ReconcilerConfig(
            exclusive_timeout_seconds=self.exclusive_timeout_seconds,
            poll_interval_seconds=self.poll_interval_seconds,
            batch_size=self.batch_size,
        )


class OpsRules(BaseModel):
    data_dir_required: bool
    required_env: list[str]
    busy_timeout_seconds: float = Field(5.0, gt=0)


class Rules(BaseModel):
    project: ProjectRules
    scoring: ScoringRules = ScoringRules()
    ingestion: IngestionRules = IngestionRules()
    aggregates: AggregatesRules = AggregatesRules()
    reconciler: ReconcilerRules = ReconcilerRules()
    ops: OpsRules
