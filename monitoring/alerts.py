"""
============================================================================
UPTIME ENGINE - ESCALATION DISPATCHER
============================================================================
Notifies the operator audience when a server's failure counter crosses the
threshold.

Delivery goes through Discord's REST API (v10):

1. Resolve the audience: page through ``GET /guilds/{guild}/members`` and
   keep non-bot members holding the alert role.
2. For every member, open a DM channel (``POST /users/@me/channels``) and
   post an embed to it (``POST /channels/{id}/messages``).
3. Sleep ``send_delay`` seconds between members to stay clear of rate
   limits.

Credentials are read from stored site settings first and fall back to the
environment. Missing credentials skip the escalation with a warning. A
failed send to one member (blocked DMs, 429, network) is logged and the
next member is tried. The dispatcher never raises into the uptime cycle:
by the time it runs, the notified flag is already committed.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from config.constants import MessageTemplates, SiteSettingKeys
from config.settings import EscalationSettings
from database.manager import SiteSettingRepository
from exceptions import EscalationError
from utils.helpers import StringHelper, TimeHelper
from utils.logger import get_logger


logger = get_logger("Escalation")


# ============================================================================
# CONFIGURATION & PAYLOADS
# ============================================================================

@dataclass(frozen=True)
class EscalationConfig:
    """Discord credentials in effect for one cycle."""
    bot_token: Optional[str] = None
    guild_id: Optional[str] = None
    role_id: Optional[str] = None

    @property
    def missing(self) -> List[str]:
        names = []
        if not self.bot_token:
            names.append("bot token")
        if not self.guild_id:
            names.append("guild id")
        if not self.role_id:
            names.append("alert role id")
        return names

    @property
    def is_complete(self) -> bool:
        return not self.missing

    @classmethod
    async def resolve(cls, settings: EscalationSettings, site_settings: SiteSettingRepository) -> "EscalationConfig":
        """
        Read credentials from stored site settings, falling back to the
        environment for each value that is not stored.
        """
        stored = await site_settings.get_values([
            SiteSettingKeys.DISCORD_BOT_TOKEN,
            SiteSettingKeys.DISCORD_GUILD_ID,
            SiteSettingKeys.DISCORD_ALERT_ROLE_ID,
        ])
        env_token = settings.discord_bot_token.get_secret_value() if settings.discord_bot_token else None

        config = cls(
            bot_token=stored[SiteSettingKeys.DISCORD_BOT_TOKEN] or env_token or None,
            guild_id=stored[SiteSettingKeys.DISCORD_GUILD_ID] or settings.discord_guild_id or None,
            role_id=stored[SiteSettingKeys.DISCORD_ALERT_ROLE_ID] or settings.discord_role_id or None,
        )
        logger.debug(
            f"[Escalation] Credentials: token={StringHelper.mask_secret(config.bot_token)}, "
            f"guild={config.guild_id}, role={config.role_id}"
        )
        return config


@dataclass(frozen=True)
class EscalationRequest:
    """Produced by the failure tracker when a server enters ALERTING."""
    server_id: int
    server_name: str
    failure_count: int
    detected_at: datetime = field(default_factory=TimeHelper.get_utc_now)


@dataclass
class EscalationReport:
    """Delivery summary for one escalation."""
    server_name: str
    audience: int = 0
    delivered: int = 0
    failed: int = 0
    skipped_reason: Optional[str] = None

    @property
    def sent(self) -> bool:
        return self.delivered > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "server": self.server_name,
            "audience": self.audience,
            "delivered": self.delivered,
            "failed": self.failed,
            "skipped_reason": self.skipped_reason,
        }


# ============================================================================
# ESCALATION DISPATCHER
# ============================================================================

class EscalationDispatcher:
    """
    Sends outage alerts to every member of the alert role by Discord DM.

    Parameters
    ----------
    settings : EscalationSettings
        API base URL, send delay, timeouts and environment credentials.
    client : httpx.AsyncClient | None
        Shared HTTP client. When None a client is opened per escalation.
    sleep : callable
        Awaitable used for the inter-send delay (replaceable in tests).
    """

    def __init__(
        self,
        settings: EscalationSettings,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings
        self._client = client
        self._sleep = sleep

        self._stats: Dict[str, int] = {
            "escalations": 0,
            "skipped": 0,
            "messages_delivered": 0,
            "messages_failed": 0,
        }

        logger.info(
            f"EscalationDispatcher created: enabled={settings.enabled}, "
            f"send_delay={settings.send_delay}s"
        )

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    async def dispatch(self, request: EscalationRequest, config: EscalationConfig) -> EscalationReport:
        """
        Deliver one escalation. Never raises.

        Returns
        -------
        EscalationReport
            Audience size and per-member delivery counts, or the reason the
            escalation was skipped.
        """
        report = EscalationReport(server_name=request.server_name)
        self._stats["escalations"] += 1

        if not self.settings.enabled:
            return self._skip(report, "escalation disabled")

        if not config.is_complete:
            return self._skip(report, f"missing Discord configuration: {', '.join(config.missing)}")

        if self._client is not None:
            await self._deliver(self._client, request, config, report)
        else:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.settings.request_timeout)) as client:
                await self._deliver(client, request, config, report)

        self._stats["messages_delivered"] += report.delivered
        self._stats["messages_failed"] += report.failed

        logger.info(
            f"[Escalation] {request.server_name}: delivered {report.delivered}/{report.audience}"
            + (f" ({report.failed} failed)" if report.failed else "")
        )
        return report

    async def dispatch_all(self, requests: List[EscalationRequest], config: EscalationConfig) -> List[EscalationReport]:
        """
        Deliver escalations one after another. An unexpected error in one
        escalation is logged and reported as skipped; the rest still run.
        """
        reports = []
        for request in requests:
            try:
                reports.append(await self.dispatch(request, config))
            except Exception as e:
                logger.opt(exception=True).error(
                    f"[Escalation] Unexpected error alerting for {request.server_name}: {e}"
                )
                self._stats["skipped"] += 1
                reports.append(EscalationReport(
                    server_name=request.server_name,
                    skipped_reason=f"unexpected error: {type(e).__name__}",
                ))
        return reports

    def build_embed(self, request: EscalationRequest) -> Dict[str, Any]:
        """Render the alert embed for *request*."""
        return {
            "title": MessageTemplates.ALERT_TITLE.format(server_name=request.server_name),
            "description": MessageTemplates.ALERT_DESCRIPTION.format(
                server_name=request.server_name,
                failure_count=request.failure_count,
            ),
            "color": MessageTemplates.ALERT_COLOR,
            "fields": [
                {"name": "Consecutive failures", "value": str(request.failure_count), "inline": True},
                {"name": "Detected at", "value": TimeHelper.format_datetime(request.detected_at), "inline": True},
            ],
            "footer": {"text": MessageTemplates.ALERT_FOOTER},
            "timestamp": request.detected_at.isoformat(),
        }

    # ------------------------------------------------------------------
    # DELIVERY
    # ------------------------------------------------------------------

    def _skip(self, report: EscalationReport, reason: str) -> EscalationReport:
        logger.warning(f"[Escalation] Skipping alert for {report.server_name}: {reason}")
        report.skipped_reason = reason
        self._stats["skipped"] += 1
        return report

    async def _deliver(
        self,
        client: httpx.AsyncClient,
        request: EscalationRequest,
        config: EscalationConfig,
        report: EscalationReport,
    ) -> None:
        try:
            audience = await self.resolve_audience(client, config)
        except EscalationError as e:
            logger.error(f"[Escalation] Could not resolve alert audience: {e.message}")
            report.skipped_reason = "audience lookup failed"
            self._stats["skipped"] += 1
            return

        report.audience = len(audience)
        if not audience:
            logger.warning(f"[Escalation] No members hold alert role {config.role_id}")
            report.skipped_reason = "empty audience"
            return

        embed = self.build_embed(request)

        for index, user_id in enumerate(audience):
            if index > 0:
                await self._sleep(self.settings.send_delay)
            try:
                await self._send_direct_message(client, config, user_id, embed)
                report.delivered += 1
                logger.debug(f"[Escalation] ✓ Alert for {request.server_name} sent to {user_id}")
            except EscalationError as e:
                report.failed += 1
                logger.warning(f"[Escalation] Failed to alert member {user_id}: {e.message}")

    async def resolve_audience(self, client: httpx.AsyncClient, config: EscalationConfig) -> List[str]:
        """
        Return the ids of non-bot guild members holding the alert role.

        Raises:
            EscalationError: If a member page cannot be fetched
        """
        page_size = self.settings.member_page_size
        after = "0"
        user_ids: List[str] = []

        while True:
            members = await self._request(
                client,
                config,
                "GET",
                f"/guilds/{config.guild_id}/members",
                params={"limit": page_size, "after": after},
            )
            if not isinstance(members, list):
                raise EscalationError("Unexpected guild member listing")

            last_id = None
            for member in members:
                user = member.get("user") if isinstance(member, dict) else None
                if not isinstance(user, dict) or not user.get("id"):
                    logger.debug(f"[Escalation] Ignoring malformed guild member entry: {member!r:.120}")
                    continue
                last_id = str(user["id"])
                if user.get("bot"):
                    continue
                roles = member.get("roles")
                if isinstance(roles, list) and config.role_id in roles:
                    user_ids.append(last_id)

            if len(members) < page_size or last_id is None or last_id == after:
                return user_ids
            after = last_id

    async def _send_direct_message(
        self,
        client: httpx.AsyncClient,
        config: EscalationConfig,
        user_id: str,
        embed: Dict[str, Any],
    ) -> None:
        channel = await self._request(
            client, config, "POST", "/users/@me/channels", json={"recipient_id": user_id}
        )
        channel_id = channel.get("id") if isinstance(channel, dict) else None
        if not channel_id:
            raise EscalationError(f"No DM channel returned for {user_id}")

        await self._request(
            client, config, "POST", f"/channels/{channel_id}/messages", json={"embeds": [embed]}
        )

    async def _request(
        self,
        client: httpx.AsyncClient,
        config: EscalationConfig,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> Any:
        """
        Perform one Discord API call and decode its JSON body.

        Raises:
            EscalationError: On transport errors and non-2xx responses
        """
        url = f"{self.settings.discord_api_url}{path}"
        headers = {
            "Authorization": f"Bot {config.bot_token}",
            "User-Agent": "DiscordBot (uptime-engine, 1.0)",
        }
        try:
            response = await client.request(
                method, url, headers=headers, timeout=self.settings.request_timeout, **kwargs
            )
        except httpx.HTTPError as e:
            raise EscalationError(f"{method} {path} failed: {e}", cause=e) from e

        if not response.is_success:
            raise EscalationError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise EscalationError(f"{method} {path} returned invalid JSON", cause=e) from e

    # ------------------------------------------------------------------
    # DIAGNOSTIC
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        """Return delivery counters for diagnostics."""
        return dict(self._stats, enabled=self.settings.enabled)
