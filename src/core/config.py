"""
Application configuration for the Store P&L Anomaly Copilot.

Provides environment-aware settings with the reference defaults. All anomaly
thresholds are configurable so the rule table can be exercised with synthetic
values, but they default to the figures the finance team signed off on.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnomalyThresholds(BaseModel):
	"""
	Thresholds for the store anomaly rules.

	- Sigma multiples apply to cross-store baselines (net profit %, gross profit %).
	- Budget thresholds are relative shortfalls of sales against budget.
	"""

	underperform_sigma: float = Field(1.5, ge=0.0, description="Net profit % low-tail trigger")
	underperform_high_sigma: float = Field(2.0, ge=0.0, description="Net profit % high severity")
	outperform_sigma: float = Field(1.5, ge=0.0, description="Net profit % high-tail trigger")
	low_margin_sigma: float = Field(1.5, ge=0.0, description="Gross profit % low-tail trigger")

	budget_miss: float = Field(
		0.20, ge=0.0, le=1.0, description="Sales shortfall vs budget (20% below)"
	)
	budget_miss_high: float = Field(
		0.30, ge=0.0, le=1.0, description="High severity sales shortfall (30% below)"
	)

	@model_validator(mode="after")
	def _check_ordering(self) -> "AnomalyThresholds":
		if self.underperform_high_sigma < self.underperform_sigma:
			raise ValueError("underperform_high_sigma must be >= underperform_sigma")
		if self.budget_miss_high < self.budget_miss:
			raise ValueError("budget_miss_high must be >= budget_miss")
		return self


class BaselineConfig(BaseModel):
	"""
	Configuration for cross-store baselines.

	Notes:
	- ddof: 0 for population standard deviation, 1 for sample.
	- min_points: observations required before a stddev is defined.
	"""

	ddof: int = Field(0, ge=0, le=1)
	min_points: int = Field(2, ge=2)


class AnomalyConfig(BaseModel):
	"""
	Store anomaly detection configuration.
	"""

	thresholds: AnomalyThresholds = AnomalyThresholds()
	baselines: BaselineConfig = BaselineConfig()


class Config(BaseSettings):
	"""
	Global configuration with environment overrides.
	"""

	model_config = SettingsConfigDict(
		env_prefix="PNL_", env_file=".env", env_nested_delimiter="__", extra="ignore"
	)

	log_level: str = Field("INFO", description="Default logging level")
	logs_dir: Path = Field(Path("logs"), description="Directory for log files")
	data_path: Optional[Path] = Field(None, description="Financial dataset (JSON or CSV)")
	company_store_name: str = Field(
		"GULF COFFEE CO", description="Store label of the company-level rollup rows"
	)
	anomaly: AnomalyConfig = AnomalyConfig()

	def model_post_init(self, __context: object) -> None:
		self.logs_dir.mkdir(parents=True, exist_ok=True)


config = Config()
