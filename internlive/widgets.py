"""Textual widgets for the notification center, activity feed and chat.

Widgets only read view-state (store, feed, session) and re-render when it
changes; every write goes through the service objects.
"""
from datetime import datetime, timezone
from typing import List, Optional

from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.css.query import NoMatches
from textual.reactive import reactive
from textual.widgets import Input, Static

from . import notifications
from .activity import ActivityFeed, describe
from .commands import CommandResult
from .data_models import Conversation, Message, Notification, Priority
from .errors import ApiError
from .messaging import ConversationSession
from .service import RealtimeService

TYPE_ICONS = {
    "application_received": "📥",
    "application_status_update": "📋",
    "new_internship_match": "✨",
    "interview_scheduled": "📅",
    "deadline_reminder": "⏰",
    "profile_view": "👀",
    "message": "💬",
    "system_update": "🔧",
    "company_verification": "✅",
    "review_request": "📝",
}

PRIORITY_MARKS = {
    Priority.HIGH: "! ",
    Priority.MEDIUM: "  ",
    Priority.LOW: "  ",
}


def format_time_ago(dt: Optional[datetime]) -> str:
    """Format datetime as 'time ago' string."""
    if dt is None:
        return ""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    diff = datetime.now(timezone.utc) - dt
    if diff.days > 0:
        return f"{diff.days}d ago"
    if diff.days < 0 or diff.seconds < 60:
        return "just now"
    if diff.seconds < 3600:
        return f"{diff.seconds // 60}m ago"
    return f"{diff.seconds // 3600}h ago"


class NotificationItem(Static):
    def __init__(self, notification: Notification, **kwargs):
        super().__init__(markup=False, **kwargs)
        self.notification = notification
        if not notification.read:
            self.add_class("unread")

    def render(self) -> Text:
        n = self.notification
        icon = TYPE_ICONS.get(n.type, "🔵")
        mark = PRIORITY_MARKS.get(n.priority, "  ")
        return Text.assemble(
            ("● " if not n.read else "  ", "bold cyan"),
            (mark, "bold red"),
            f"{icon} ",
            (n.title, "bold" if not n.read else ""),
            (f" • {format_time_ago(n.created_at)}", "dim"),
            f"\n      {n.message}",
        )


class ConnectionStatus(Static):
    """One-line live channel indicator, refreshed once a second."""

    def __init__(self, service: RealtimeService, **kwargs):
        super().__init__(**kwargs)
        self.service = service

    def on_mount(self) -> None:
        self.set_interval(1.0, self.refresh)

    def render(self) -> str:
        info = self.service.connection_info()
        if info.is_connected:
            return "● live"
        if info.state == "reconnecting":
            return f"◌ reconnecting (attempt {info.attempt_count + 1})"
        if info.failure == "server_disconnect":
            return "○ offline: sign in again"
        if info.failure:
            return "○ offline: polling"
        return f"○ {info.state}"


class NotificationBell(Static):
    """Unread badge plus the newest unread titles."""

    def __init__(self, service: RealtimeService, **kwargs):
        super().__init__(markup=False, **kwargs)
        self.service = service
        self.bell: notifications.NotificationBell = service.bell
        self._sub = None

    def on_mount(self) -> None:
        self._sub = self.service.store.subscribe(lambda _store: self.refresh())
        self.run_worker(self.bell.refresh(), group="bell")

    def on_unmount(self) -> None:
        if self._sub is not None:
            self._sub.dispose()
            self._sub = None

    def render(self) -> str:
        count = self.bell.unread_count
        badge = "99+" if count > 99 else str(count)
        lines = [f"🔔 {badge} unread"]
        for n in self.bell.recent:
            lines.append(f"  • {n.title} ({format_time_ago(n.created_at)})")
        return "\n".join(lines)


class NotificationCenterPanel(VerticalScroll):
    cursor_position = reactive(0)
    can_focus = True

    def __init__(self, service: RealtimeService, **kwargs):
        super().__init__(**kwargs)
        self.service = service
        self.center: notifications.NotificationCenter = service.center
        self._sub = None

    def compose(self) -> ComposeResult:
        self.border_title = "[1] Notifications"
        yield Static("", classes="panel-header", id="notif-header", markup=False)
        yield Vertical(id="notif-list")
        yield Static(
            "[j/k] Navigate [Enter] Open [r] Read [x] Delete [a] All read [R] Read shown [D] Delete shown\n"
            "[m] More [t] Type [p] Priority [u] Unread only",
            classes="help-text",
            markup=False,
        )

    def on_mount(self) -> None:
        self._sub = self.service.store.subscribe(lambda _store: self.call_later(self.rebuild))
        self.call_later(self.rebuild)
        self.run_worker(self._refresh(), group="notif-load")

    def on_unmount(self) -> None:
        if self._sub is not None:
            self._sub.dispose()
            self._sub = None

    def _header(self) -> str:
        text = f"notifications | {self.service.store.unread_count} unread | {self.center.filter.label()}"
        if self.center.loading:
            text += " | loading…"
        if self.center.last_error:
            text += f" | {self.center.last_error}"
        if self.center.has_more:
            text += " | [m] more"
        return text

    async def rebuild(self) -> None:
        try:
            container = self.query_one("#notif-list", Vertical)
            header = self.query_one("#notif-header", Static)
        except NoMatches:
            # not composed yet, or already gone
            return
        header.update(self._header())
        visible = self.center.visible()
        await container.remove_children()
        if not visible:
            await container.mount(Static("No notifications", classes="empty", markup=False))
        else:
            await container.mount_all(NotificationItem(n, classes="notification-item") for n in visible)
        self.cursor_position = min(self.cursor_position, max(len(visible) - 1, 0))
        self._update_cursor()

    def watch_cursor_position(self, old_position: int, new_position: int) -> None:
        self._update_cursor()

    def _update_cursor(self) -> None:
        items = list(self.query(".notification-item"))
        for item in items:
            item.remove_class("vim-cursor")
        if 0 <= self.cursor_position < len(items):
            item = items[self.cursor_position]
            item.add_class("vim-cursor")
            self.scroll_to_widget(item)

    def _selected(self) -> Optional[Notification]:
        items = list(self.query(".notification-item"))
        if 0 <= self.cursor_position < len(items):
            return items[self.cursor_position].notification
        return None

    async def _refresh(self) -> None:
        await self.center.refresh()
        await self.rebuild()

    async def _run(self, command, success: Optional[str] = None) -> Optional[CommandResult]:
        result = await command
        if not result.ok:
            self.app.notify(result.message or "Request failed", severity="error")
        elif success:
            self.app.notify(success, timeout=2)
        await self.rebuild()
        return result

    def key_j(self) -> None:
        """Move down with j key"""
        items = list(self.query(".notification-item"))
        if self.cursor_position < len(items) - 1:
            self.cursor_position += 1

    def key_k(self) -> None:
        """Move up with k key"""
        if self.cursor_position > 0:
            self.cursor_position -= 1

    def key_G(self) -> None:
        items = list(self.query(".notification-item"))
        self.cursor_position = max(len(items) - 1, 0)

    def key_enter(self) -> None:
        n = self._selected()
        if n is not None:
            self.run_worker(self._open(n.id))

    async def _open(self, notification_id: str) -> None:
        result = await self.service.bell.activate(notification_id)
        if not result.ok:
            self.app.notify(result.message or "Request failed", severity="error")
        elif result.value:
            self.app.notify(f"Open {result.value}", timeout=3)
        await self.rebuild()

    def key_r(self) -> None:
        n = self._selected()
        if n is not None:
            self.run_worker(self._run(self.center.mark_read(n.id)))

    def key_x(self) -> None:
        n = self._selected()
        if n is not None:
            self.run_worker(self._run(self.center.delete(n.id), "Notification deleted"))

    def key_a(self) -> None:
        self.run_worker(self._run(self.center.mark_all_read(), "All notifications marked as read"))

    def key_R(self) -> None:
        self.run_worker(self._run(self.center.bulk_mark_read(), "Shown notifications marked as read"))

    def key_D(self) -> None:
        self.run_worker(self._run(self.center.bulk_delete(), "Deleted shown notifications"))

    def key_m(self) -> None:
        if self.center.has_more:
            self.run_worker(self._load_more(), group="notif-load")

    async def _load_more(self) -> None:
        await self.center.load_more()
        await self.rebuild()

    def key_t(self) -> None:
        self.center.filter.cycle_type()
        self.run_worker(self._refresh(), group="notif-load", exclusive=True)

    def key_p(self) -> None:
        self.center.filter.cycle_priority()
        self.run_worker(self._refresh(), group="notif-load", exclusive=True)

    def key_u(self) -> None:
        self.center.filter.toggle_unread()
        self.run_worker(self._refresh(), group="notif-load", exclusive=True)


class ActivityFeedPanel(VerticalScroll):
    def __init__(self, service: RealtimeService, company_id: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.service = service
        self.company_id = company_id
        self.feed: Optional[ActivityFeed] = None

    def compose(self) -> ComposeResult:
        self.border_title = "[2] Activity"
        yield Static("", classes="panel-header", id="activity-header", markup=False)
        yield Static("", id="activity-list", markup=False)

    def on_mount(self) -> None:
        self.feed = self.service.activity_feed(self.company_id)
        self.feed.add_listener(lambda _feed: self.render_feed())
        self.set_interval(1.0, self.render_feed)
        self.render_feed()

    def on_unmount(self) -> None:
        if self.feed is not None:
            self.feed.close()
            self.feed = None

    def render_feed(self) -> None:
        if self.feed is None:
            return
        live = "● live" if self.feed.is_live else "○ offline"
        lines = []
        for activity in self.feed.activities:
            flag = "NEW " if activity.is_new else "    "
            lines.append(f"{flag}{describe(activity)} • {format_time_ago(activity.timestamp)}")
        try:
            self.query_one("#activity-header", Static).update(f"recent activity | {live}")
            self.query_one("#activity-list", Static).update("\n".join(lines) or "No recent activity")
        except NoMatches:
            return


class ChatPanel(Horizontal):
    """Conversation list on the left, open conversation on the right."""

    cursor_position = reactive(0)
    can_focus = True

    def __init__(self, service: RealtimeService, user_id: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.service = service
        self.session: ConversationSession = service.conversation_session(user_id)

    def compose(self) -> ComposeResult:
        list_view = VerticalScroll(Static("", id="conversation-list", markup=False), id="conversations")
        list_view.border_title = "[3] Messages"
        yield list_view
        with Vertical(id="chat"):
            yield Static("", classes="panel-header", id="chat-header", markup=False)
            yield VerticalScroll(Static("", id="chat-log", markup=False), id="chat-scroll")
            yield Static("", id="typing-indicator", markup=False)
            yield Input(
                placeholder="Type message and press Enter…",
                classes="message-input",
                id="message-input",
            )

    def on_mount(self) -> None:
        self.session.add_listener(lambda _session: self.render_chat())
        self.run_worker(self._load(), group="chat")

    async def on_unmount(self) -> None:
        await self.session.close()

    async def _load(self) -> None:
        try:
            await self.session.load_conversations()
        except ApiError as exc:
            self.app.notify(exc.message, severity="error")
        self.render_chat()

    def _conversations(self) -> List[Conversation]:
        return self.session.conversations

    def render_chat(self) -> None:
        try:
            conv_list = self.query_one("#conversation-list", Static)
            header = self.query_one("#chat-header", Static)
            log = self.query_one("#chat-log", Static)
            typing = self.query_one("#typing-indicator", Static)
        except NoMatches:
            return
        rows = []
        for i, c in enumerate(self._conversations()):
            cursor = "▸ " if i == self.cursor_position else "  "
            unread = f" ({c.unread_count})" if c.unread_count else ""
            rows.append(f"{cursor}{', '.join(c.participants) or c.id}{unread}\n    {c.last_message_preview}")
        conv_list.update("\n".join(rows) or "No conversations")

        if self.session.conversation_id:
            header.update(f"conversation {self.session.conversation_id}")
        else:
            header.update(f"{self.session.unread_total} unread | [j/k] Select [Enter] Open")
        log.update("\n".join(self._format(m) for m in self.session.messages))
        names = list(self.session.typing_users.values())
        typing.update(f"{', '.join(names)} typing…" if names else "")

    def _format(self, message: Message) -> str:
        who = "you" if message.sender_id == self.session.user_id else (message.sender_name or "them")
        return f"{who}: {message.content}  ({format_time_ago(message.created_at)})"

    def watch_cursor_position(self, old_position: int, new_position: int) -> None:
        self.render_chat()

    def key_j(self) -> None:
        if self.cursor_position < len(self._conversations()) - 1:
            self.cursor_position += 1

    def key_k(self) -> None:
        if self.cursor_position > 0:
            self.cursor_position -= 1

    def key_enter(self) -> None:
        conversations = self._conversations()
        if 0 <= self.cursor_position < len(conversations):
            self.run_worker(self._open(conversations[self.cursor_position].id), group="chat", exclusive=True)

    async def _open(self, conversation_id: str) -> None:
        try:
            await self.session.open(conversation_id)
        except ApiError as exc:
            self.app.notify(exc.message, severity="error")
            return
        self.render_chat()
        self.query_one("#message-input", Input).focus()

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id != "message-input" or not self.session.conversation_id:
            return
        self.run_worker(self.session.set_typing(bool(event.value)), group="typing")

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "message-input":
            return
        text = event.value.strip()
        if not text:
            return
        if not self.session.conversation_id:
            self.app.notify("Open a conversation first", severity="warning")
            return
        try:
            await self.session.send(text)
        except ApiError as exc:
            self.app.notify(exc.message, severity="error")
            return
        event.input.value = ""
        self.render_chat()
        self.query_one("#chat-scroll", VerticalScroll).scroll_end(animate=False)
