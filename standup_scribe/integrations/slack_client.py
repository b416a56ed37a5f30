from __future__ import annotations

from typing import Dict, Any, List, Optional
from datetime import datetime, timezone
import hashlib
import hmac

from slack_sdk.web.async_client import AsyncWebClient
from slack_sdk.errors import SlackApiError

from ..core.commands import StandupAction
from .base import (
    BaseIntegration,
    IntegrationConfig,
    IntegrationStatus,
    AuthenticationError,
    IntegrationError
)

# Slack-specific models
class SlackConfig(IntegrationConfig):
    """Slack integration configuration."""

    name: str = "slack"
    bot_token: Optional[str] = None
    signing_secret: Optional[str] = None

class SlackError(IntegrationError):
    """Slack-specific error."""
    pass

# Main Slack client
class SlackClient(BaseIntegration[SlackConfig]):
    """
    Slack messaging adapter for the standup bot.

    Features:
    - Direct messages with a single action button
    - Channel posts and file uploads for reports
    - Request signature verification for interactivity payloads
    """

    def __init__(
        self,
        config: SlackConfig,
        web_client: Optional[AsyncWebClient] = None
    ) -> None:
        super().__init__(config)
        self._web: Optional[AsyncWebClient] = web_client
        if web_client is not None:
            self.status = IntegrationStatus.CONNECTED

    async def connect(self) -> None:
        """Create the Web API client from the bot token."""
        self._logger.info("Connecting to Slack")

        if not self.config.bot_token:
            self.status = IntegrationStatus.ERROR
            raise AuthenticationError(
                "No valid token provided",
                self.config.name
            )

        self._web = AsyncWebClient(token=self.config.bot_token)
        self.status = IntegrationStatus.CONNECTED

    async def refresh_credentials(self) -> None:
        """Slack bot tokens don't expire; reconnect instead."""
        await self.connect()

    async def _web_client(self) -> AsyncWebClient:
        if self._web is None:
            await self.connect()
        return self._web

    # Message operations

    async def post_message(
        self,
        channel: str,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None
    ) -> str:
        """Post message to a channel or DM, returning its timestamp."""
        web = await self._web_client()

        try:
            response = await web.chat_postMessage(
                channel=channel,
                text=text,
                blocks=blocks
            )

            if response["ok"]:
                return response["ts"]
            raise SlackError(
                f"Failed to post message: {response.get('error')}",
                self.config.name
            )

        except SlackApiError as e:
            raise SlackError(
                f"Slack API error: {str(e)}",
                self.config.name
            ) from e

    async def open_direct_channel(self, user_id: str) -> str:
        """Open (or reuse) the DM channel with a user."""
        web = await self._web_client()

        try:
            response = await web.conversations_open(users=user_id)
            if response["ok"]:
                return response["channel"]["id"]
            raise SlackError(
                f"Failed to open DM: {response.get('error')}",
                self.config.name
            )

        except SlackApiError as e:
            raise SlackError(
                f"Slack API error: {str(e)}",
                self.config.name
            ) from e

    async def send_direct_message(
        self,
        user_id: str,
        text: str,
        action: Optional[StandupAction] = None,
        action_label: Optional[str] = None
    ) -> None:
        """DM a user; raises SlackError when the message cannot be delivered."""
        channel = await self.open_direct_channel(user_id)
        await self.post_message(channel, text, blocks=self.build_prompt_blocks(text, action, action_label))

    async def send_channel_message(self, channel_id: str, text: str) -> Optional[str]:
        """Post to a channel and return a permalink when Slack provides one."""
        ts = await self.post_message(channel_id, text)
        web = await self._web_client()

        try:
            response = await web.chat_getPermalink(channel=channel_id, message_ts=ts)
            return response.get("permalink")
        except SlackApiError:
            self._logger.warning("Could not fetch permalink for %s in %s", ts, channel_id)
            return None

    async def upload_file(
        self,
        channel_id: str,
        file_path: str,
        title: Optional[str] = None
    ) -> None:
        """Attach a file (e.g. the CSV export) to a channel."""
        web = await self._web_client()

        try:
            await web.files_upload_v2(
                channel=channel_id,
                file=file_path,
                title=title
            )
        except SlackApiError as e:
            raise SlackError(
                f"Slack API error: {str(e)}",
                self.config.name
            ) from e

    @staticmethod
    def build_prompt_blocks(
        text: str,
        action: Optional[StandupAction],
        action_label: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Section text plus an optional button carrying the encoded action."""
        blocks: List[Dict[str, Any]] = [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": text
                }
            }
        ]

        if action is not None:
            blocks.append({
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "style": "primary",
                        "text": {
                            "type": "plain_text",
                            "text": action_label or "Start Standup"
                        },
                        "action_id": action.encode()
                    }
                ]
            })

        return blocks

    # Webhook verification

    def verify_webhook_signature(
        self,
        request_body: bytes,
        request_timestamp: str,
        request_signature: str
    ) -> bool:
        """Verify Slack webhook signature."""
        if not self.config.signing_secret:
            return False

        # Check timestamp (prevent replay attacks)
        try:
            timestamp = int(request_timestamp)
        except (TypeError, ValueError):
            return False
        current_time = int(datetime.now(timezone.utc).timestamp())

        if abs(current_time - timestamp) > 300:  # 5 minutes
            return False

        # Verify signature
        sig_basestring = b"v0:" + request_timestamp.encode() + b":" + request_body
        computed_signature = 'v0=' + hmac.new(
            self.config.signing_secret.encode(),
            sig_basestring,
            hashlib.sha256
        ).hexdigest()

        return hmac.compare_digest(computed_signature, request_signature or "")
