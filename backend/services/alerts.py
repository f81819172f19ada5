"""
Alerting for scheduled checks: decide which surfaces to use for a result and
carry out the unsupported-software escalation.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from config import APP_NAME
from services import settings as settings_svc
from services.checker import UNSUPPORTED, CheckResult, CheckStatus, ResultBroadcaster
from services.scheduler import ScheduleConfig

logger = logging.getLogger(__name__)

MESSAGES = {
    "update": "{name} {current} is out of date. Version {latest} is available.",
    "error": "Could not check for {name} updates ({cause}).",
    "unsupported": "{name} {current} is not a supported release. Automatic checks have been turned off.",
}


class AlertMode(str, Enum):
    BOTH = "both"
    TAB = "tab"
    NOTIFICATION = "notif"
    DISABLED = "disabled"


@dataclass(frozen=True)
class AlertConfig:
    mode: AlertMode = AlertMode.BOTH

    @classmethod
    def from_value(cls, value) -> "AlertConfig":
        try:
            return cls(AlertMode(value))
        except ValueError:
            logger.warning("Unknown alert type %r, alerting on both surfaces", value)
            return cls(AlertMode.BOTH)


@dataclass(frozen=True)
class AlertDecision:
    open_surface: bool = False
    notify: bool = False
    escalate: bool = False

    @property
    def any(self) -> bool:
        return self.open_surface or self.notify


def decide(result: CheckResult, config: AlertConfig) -> AlertDecision:
    """
    Unsupported software always escalates with both surfaces, whatever the
    configured mode. Otherwise only error and update_available alert.
    """
    if result.status == CheckStatus.ERROR and result.error_cause == UNSUPPORTED:
        return AlertDecision(open_surface=True, notify=True, escalate=True)
    if not result.alertable or config.mode == AlertMode.DISABLED:
        return AlertDecision()
    return AlertDecision(
        open_surface=config.mode in (AlertMode.TAB, AlertMode.BOTH),
        notify=config.mode in (AlertMode.NOTIFICATION, AlertMode.BOTH),
    )


def format_message(result: CheckResult) -> str:
    if result.error_cause == UNSUPPORTED:
        key = "unsupported"
    elif result.status == CheckStatus.ERROR:
        key = "error"
    else:
        key = "update"
    return MESSAGES[key].format(
        name=result.software_name or "Software",
        current=result.current_version or "?",
        latest=result.latest_version or "?",
        cause=result.error_cause,
    )


class AlertDispatcher:
    """
    Turns scheduled check results into alerts.

    ``notifier(title, message, result)`` and ``open_surface(result)`` are the
    delivery hooks; by default both log and push an "alert" event to the
    broadcaster so connected UIs can react.
    """

    def __init__(
        self,
        broadcaster: Optional[ResultBroadcaster] = None,
        reconciler=None,
        settings=settings_svc,
        notifier: Optional[Callable[[str, str, CheckResult], None]] = None,
        open_surface: Optional[Callable[[CheckResult], None]] = None,
    ):
        self.broadcaster = broadcaster
        self.reconciler = reconciler
        self.settings = settings
        self.notifier = notifier or self._default_notify
        self.open_surface = open_surface or self._default_open_surface

    def _default_notify(self, title: str, message: str, result: CheckResult) -> None:
        logger.warning("%s: %s", title, message)
        if self.broadcaster is not None:
            self.broadcaster.publish(
                "alert",
                {"kind": "notification", "title": title, "message": message, "result": result.to_store()},
            )

    def _default_open_surface(self, result: CheckResult) -> None:
        logger.info("Requesting the status page for %s", result.software_name)
        if self.broadcaster is not None:
            self.broadcaster.publish("alert", {"kind": "open", "result": result.to_store()})

    def dispatch(self, result: CheckResult) -> AlertDecision:
        config = AlertConfig.from_value(self.settings.get_alert_type())
        decision = decide(result, config)
        if decision.escalate:
            logger.error("Unsupported software, forcing alerts and disabling scheduled checks")
            self.settings.disable_checks_and_force_alerts()
            if self.reconciler is not None:
                self.reconciler.apply(ScheduleConfig(0))
        if decision.open_surface:
            self.open_surface(result)
        if decision.notify:
            self.notifier(APP_NAME, format_message(result), result)
        return decision
