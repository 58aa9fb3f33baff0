"""Change feed listener.

Subscribes to stay and room changes, turns each event into a notification and
requests a debounced refresh. A fallback poller forces a refresh periodically
while connected, in case push events are missed.

Connection state machine::

    disconnected --start()--> connecting --ack--> connected
    connected --channel closed--> disconnected
    any --channel error--> error   (no automatic retry; call reconnect())
"""

import asyncio
import logging
from typing import Any, Callable

from models.base import EntityKind
from models.notification import ConnectionState, Notification, NotificationCategory
from models.room import HousekeepingStatus
from models.stay import StayStatus
from realtime.channel import ChangeChannel, ChangeEvent, ChangeOperation
from realtime.notifications import NotificationCenter
from scheduling.debounce import Debouncer
from scheduling.poller import DEFAULT_POLL_INTERVAL, FallbackPoller
from scheduling.timers import TimerScheduler
from utils.errors import ChannelError

logger = logging.getLogger(__name__)


def _status_label(value: Any, enum_type: type) -> str:
    try:
        return enum_type(value).label
    except ValueError:
        return str(value)


def describe_event(event: ChangeEvent) -> Notification | None:
    """Build the notification for a change event, or None if it warrants none."""
    record = event.record
    payload = dict(record)

    if event.kind == EntityKind.STAY:
        reference = record.get("confirmation_number") or record.get("id") or ""
        if event.operation == ChangeOperation.INSERT:
            guest = record.get("guest_name") or "guest"
            return Notification(
                category=NotificationCategory.CREATED,
                title="New reservation",
                message=f"New reservation created for {guest}",
                payload=payload,
            )
        if event.operation == ChangeOperation.UPDATE:
            new_status = (event.new or {}).get("status")
            old_status = (event.old or {}).get("status")
            if event.old is None or old_status != new_status:
                return Notification(
                    category=NotificationCategory.STATUS_CHANGED,
                    title="Reservation status updated",
                    message=(
                        f"Reservation {reference} status changed to "
                        f"{_status_label(new_status, StayStatus)}"
                    ),
                    payload=payload,
                )
            return Notification(
                category=NotificationCategory.UPDATED,
                title="Reservation updated",
                message=f"Reservation {reference} was updated",
                payload=payload,
            )
        if event.operation == ChangeOperation.DELETE:
            return Notification(
                category=NotificationCategory.CANCELLED,
                title="Reservation removed",
                message=f"Reservation {reference} was removed",
                payload=payload,
            )
        return None

    if event.kind == EntityKind.ROOM and event.operation == ChangeOperation.UPDATE:
        new_status = (event.new or {}).get("status")
        old_status = (event.old or {}).get("status")
        if event.old is not None and old_status == new_status:
            return None
        number = record.get("room_number") or record.get("number") or record.get("id")
        return Notification(
            category=NotificationCategory.UPDATED,
            title="Room status updated",
            message=f"Room {number} status changed to {_status_label(new_status, HousekeepingStatus)}",
            payload=payload,
        )

    return None


class ChangeFeedListener:
    """Owns the stay and room subscriptions and the fallback poll."""

    def __init__(
        self,
        channel: ChangeChannel,
        debouncer: Debouncer,
        notifications: NotificationCenter | None = None,
        property_id: str | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timers: TimerScheduler | None = None,
        on_state_change: Callable[[ConnectionState], Any] | None = None,
    ):
        """Initialize listener.

        Args:
            channel: Change channel to subscribe to
            debouncer: Debouncer wrapping the engine's refresh
            notifications: Notification list to append to
            property_id: Scope subscriptions to one property
            poll_interval: Seconds between forced refreshes while connected
            timers: Timer scheduler shared with the debouncer
            on_state_change: Called with the new state on every transition
        """
        self.channel = channel
        self.debouncer = debouncer
        self.notifications = notifications or NotificationCenter()
        self.property_id = property_id
        self.on_state_change = on_state_change

        self.events_received = 0
        self._state = ConnectionState.DISCONNECTED
        self._sub_states: dict[EntityKind, ConnectionState] = {}
        self._tasks: dict[EntityKind, asyncio.Task] = {}
        self._poller = FallbackPoller(
            action=self.debouncer.fire_now,
            interval=poll_interval,
            timers=timers or debouncer.timers,
            should_poll=lambda: self._state == ConnectionState.CONNECTED,
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def poller(self) -> FallbackPoller:
        return self._poller

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        """Subscribe to stay and room changes and start the fallback poll."""
        if self._tasks:
            return

        filters = {"property_id": self.property_id} if self.property_id else {}
        for kind in (EntityKind.STAY, EntityKind.ROOM):
            self._sub_states[kind] = ConnectionState.CONNECTING
        self._update_state()

        for kind in (EntityKind.STAY, EntityKind.ROOM):
            self._tasks[kind] = asyncio.create_task(self._run_subscription(kind, filters))

        self._poller.start()
        logger.info("Change feed listener started")

    async def stop(self) -> None:
        """Release both subscriptions and stop polling."""
        self._poller.stop()
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._sub_states.clear()
        self._update_state()
        logger.info("Change feed listener stopped")

    async def reconnect(self) -> None:
        """Tear down and establish fresh subscriptions."""
        await self.stop()
        await self.start()

    async def wait_connected(self, timeout: float = 5.0) -> bool:
        """Wait for the listener to leave the connecting state."""
        try:
            async with asyncio.timeout(timeout):
                while self._state == ConnectionState.CONNECTING:
                    await asyncio.sleep(0)
        except asyncio.TimeoutError:
            return False
        return self._state == ConnectionState.CONNECTED

    def handle_event(self, event: ChangeEvent) -> Notification | None:
        """Record a notification for the event and request a refresh."""
        self.events_received += 1
        notification = describe_event(event)
        if notification is not None:
            self.notifications.push(notification)
        self.debouncer.request()
        return notification

    async def _run_subscription(self, kind: EntityKind, filters: dict[str, Any]) -> None:
        try:
            async with self.channel.subscribe(kind, filters) as subscription:
                self._set_sub_state(kind, ConnectionState.CONNECTED)
                logger.info(f"Subscribed to {kind.value} changes")
                async for event in subscription:
                    try:
                        self.handle_event(event)
                    except Exception as e:
                        logger.error(f"Failed to handle {kind.value} change: {e}")
            self._set_sub_state(kind, ConnectionState.DISCONNECTED)
            logger.info(f"{kind.value} change channel closed")
        except asyncio.CancelledError:
            raise
        except ChannelError as e:
            logger.error(f"{kind.value} change channel error: {e}")
            self._set_sub_state(kind, ConnectionState.ERROR)
        except Exception as e:
            logger.error(f"Unexpected {kind.value} subscription failure: {e}")
            self._set_sub_state(kind, ConnectionState.ERROR)
        finally:
            if self._tasks.get(kind) is asyncio.current_task():
                del self._tasks[kind]

    def _set_sub_state(self, kind: EntityKind, state: ConnectionState) -> None:
        self._sub_states[kind] = state
        self._update_state()

    def _update_state(self) -> None:
        states = set(self._sub_states.values())
        if not states:
            new_state = ConnectionState.DISCONNECTED
        elif ConnectionState.ERROR in states:
            new_state = ConnectionState.ERROR
        elif ConnectionState.CONNECTING in states:
            new_state = ConnectionState.CONNECTING
        elif states == {ConnectionState.CONNECTED}:
            new_state = ConnectionState.CONNECTED
        else:
            new_state = ConnectionState.DISCONNECTED

        if new_state == self._state:
            return
        old_state, self._state = self._state, new_state
        logger.info(f"Connection state: {old_state.value} -> {new_state.value}")
        if self.on_state_change is not None:
            try:
                self.on_state_change(new_state)
            except Exception as e:
                logger.error(f"Connection state callback failed: {e}")
