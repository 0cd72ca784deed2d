import os
from typing import Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.widgets import ContentSwitcher, Static

from . import auth_storage
from .api_interface import RealAPI
from .config import RealtimeSettings
from .errors import ConnectionFailure
from .events import EventName
from .log import configure_logging, get_logger
from .service import RealtimeService
from .widgets import (
    ActivityFeedPanel,
    ChatPanel,
    ConnectionStatus,
    NotificationBell,
    NotificationCenterPanel,
)

logger = get_logger("main")

APP_CSS = """
#app-header { height: 1; background: $primary; color: $text; padding: 0 1; }
#status-bar { height: 5; }
#connection-status { width: 32; padding: 0 1; }
#bell { width: 1fr; padding: 0 1; }
#app-footer { height: 1; background: $panel; padding: 0 1; }
.panel-header { color: $accent; padding: 0 1; }
.help-text { color: $text-muted; padding: 0 1; }
.notification-item { padding: 0 1; }
.notification-item.unread { text-style: bold; }
.notification-item.vim-cursor { background: darkblue; }
#conversations { width: 36; border: round $panel; }
#chat { width: 1fr; }
#chat-scroll { height: 1fr; }
#typing-indicator { height: 1; color: $text-muted; }
NotificationCenterPanel, ActivityFeedPanel { border: round $panel; }
"""

FOOTER = "[1] Notifications [2] Activity [3] Messages [j/k] Navigate [q] Quit"


class InternLiveApp(App):
    CSS = APP_CSS
    ENABLE_COMMAND_PALETTE = False

    BINDINGS = [
        Binding("q", "quit", "Quit", show=False),
        Binding("1", "show_panel('notifications')", "Notifications", show=False),
        Binding("2", "show_panel('activity')", "Activity", show=False),
        Binding("3", "show_panel('messages')", "Messages", show=False),
    ]

    def __init__(self, service: RealtimeService, token: Optional[str] = None, user: Optional[dict] = None):
        super().__init__()
        self.service = service
        self.token = token
        self.user = user or {}

    @property
    def user_id(self) -> Optional[str]:
        value = self.user.get("id") or self.user.get("_id")
        return str(value) if value else None

    def compose(self) -> ComposeResult:
        name = self.user.get("name") or self.user.get("email") or "guest"
        yield Static(f"internlive @{name}", id="app-header", markup=False)
        with Horizontal(id="status-bar"):
            yield ConnectionStatus(self.service, id="connection-status")
            yield NotificationBell(self.service, id="bell")
        with ContentSwitcher(initial="notifications", id="screen-container"):
            yield NotificationCenterPanel(self.service, id="notifications")
            yield ActivityFeedPanel(self.service, company_id=self.user.get("companyId"), id="activity")
            yield ChatPanel(self.service, user_id=self.user_id, id="messages")
        yield Static(FOOTER, id="app-footer", markup=False)

    def on_mount(self) -> None:
        registry = self.service.registry
        registry.on(EventName.NOTIFICATION, self._toast_notification)
        registry.on(EventName.INTERNSHIP_CREATED, self._toast_internship)
        registry.on(EventName.CONNECT, lambda _info: self.notify("Connected to real-time updates", timeout=2))
        registry.on(EventName.CONNECTION_FAILED, self._toast_failure)
        self.run_worker(self._start_service(), exclusive=True, group="service")
        self.call_after_refresh(self._focus_initial_content)

    async def _start_service(self) -> None:
        if not self.token:
            self.notify("Not signed in: set INTERNLIVE_TOKEN to enable live updates", severity="warning")
            return
        await self.service.init(self.token)

    def _focus_initial_content(self) -> None:
        self.query_one("#notifications", NotificationCenterPanel).focus()

    def _toast_notification(self, data) -> None:
        title = data.get("title") if isinstance(data, dict) else None
        if title:
            self.notify(str(title), title="New notification", timeout=4)

    def _toast_internship(self, data) -> None:
        if not isinstance(data, dict):
            return
        company = data.get("companyName") or "A company"
        title = data.get("title") or "a new internship"
        self.notify(f"{company} posted {title}", title="New internship", timeout=4)

    def _toast_failure(self, failure) -> None:
        if isinstance(failure, ConnectionFailure):
            self.notify(str(failure), severity="error", timeout=6)

    def action_show_panel(self, name: str) -> None:
        switcher = self.query_one("#screen-container", ContentSwitcher)
        switcher.current = name
        widget = self.query_one(f"#{name}")
        if widget.can_focus:
            widget.focus()

    async def action_quit(self) -> None:
        await self.service.teardown()
        self.exit()


def main():
    configure_logging()
    logger.debug("starting internlive")
    settings = RealtimeSettings.from_env()

    token = os.environ.get("INTERNLIVE_TOKEN")
    user: dict = {}
    if token:
        auth_storage.save_credentials(token)
    else:
        creds = auth_storage.load_credentials()
        if creds is not None:
            token, user = creds.token, creds.user

    api = RealAPI(settings.api_url, token=token, timeout=settings.rest_timeout)
    service = RealtimeService(api, settings)
    try:
        InternLiveApp(service, token=token, user=user).run()
    except Exception:
        logger.exception("Exception occurred while running InternLiveApp:")


if __name__ == "__main__":
    main()
