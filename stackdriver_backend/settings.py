"""Resolved backend configuration.

`BackendSettings` is built once at startup from the `stackdriver` section of
the statsd config and never mutated afterwards. Field aliases match the
camelCase option names used in statsd config files.
"""

from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


GATEWAY_URL = "https://custom-gateway.stackdriver.com/v1/custom"
USER_AGENT = "stackdriver-statsd-backend/0.0.1"
API_KEY_HEADER = "x-stackdriver-apikey"
PROTO_VERSION = 1

# Sources that trigger a cloud metadata lookup instead of being used verbatim
AWS_SENTINEL = "aws"
GCE_SENTINEL = "gce"
CLOUD_SENTINELS = (AWS_SENTINEL, GCE_SENTINEL)


class BackendSettings(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    api_key: Optional[str] = Field(default=None, alias="apiKey")
    source: Optional[str] = None
    source_from_prefix: bool = Field(default=False, alias="sourceFromPrefix")
    source_prefix_separator: str = Field(default="--", alias="sourcePrefixSeparator")
    debug: bool = False

    send_counters: bool = Field(default=True, alias="sendCounters")
    send_counter_rates: bool = Field(default=True, alias="sendCounterRates")
    send_gauges: bool = Field(default=True, alias="sendGauges")
    send_timer_counters: bool = Field(default=True, alias="sendTimerCounters")
    send_timer_rates: bool = Field(default=True, alias="sendTimerRates")
    send_timer_mins: bool = Field(default=True, alias="sendTimerMins")
    send_timer_maxes: bool = Field(default=True, alias="sendTimerMaxes")
    send_timer_sums: bool = Field(default=True, alias="sendTimerSums")
    send_timer_avgs: bool = Field(default=True, alias="sendTimerAvgs")
    send_timer_percentiles: bool = Field(default=False, alias="sendTimerPercentiles")
    send_sets: bool = Field(default=True, alias="sendSets")
    send_zero_timers_and_rates: bool = Field(default=True, alias="sendZeroTimersAndRates")
    percent_threshold: List[Union[int, float]] = Field(default_factory=lambda: [90], alias="percentThreshold")

    gateway_url: str = Field(default=GATEWAY_URL, alias="gatewayUrl")
    request_timeout: float = Field(default=10.0, alias="requestTimeout", gt=0)

    @field_validator("percent_threshold", mode="before")
    @classmethod
    def _wrap_scalar_threshold(cls, v):
        # statsd accepts `percentThreshold: 90` as well as a list
        if isinstance(v, (int, float, str)):
            return [v]
        return v

    @field_validator("source", "api_key", mode="before")
    @classmethod
    def _blank_is_unset(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def attribution_mode(self) -> str:
        """Return `prefix`, `source` or `none`; prefix parsing wins over a static source."""
        if self.source_from_prefix:
            return "prefix"
        if self.source:
            return "source"
        return "none"

    @property
    def cloud_sentinel(self) -> Optional[str]:
        """The sentinel name when `source` asks for metadata auto-detection."""
        if self.source and self.source.lower() in CLOUD_SENTINELS:
            return self.source.lower()
        return None
