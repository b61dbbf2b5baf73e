"""
Persistent-connection command dispatcher.

Maps inbound socket events to handlers. A connection is
unauthenticated until ``user-connect`` registers it; every other event
must then carry the registered userId. Failures inside a handler are
logged and reported on that handler's error event, never raised to the
socket loop.

Version: 1.0.0
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from ..agents.orchestrator import ResponseOrchestrator
from ..agents.intent import Intent
from ..booking import BookingService
from ..errors import AuthorizationError, GuardianError, ValidationError
from ..services.alert_service import AlertService, emergency_message
from ..services.voice_commands import wake_word_response
from ..session import SessionRegistry
from ..utils import utcnow_iso
from ..utils.telemetry import track_socket_event

logger = logging.getLogger(__name__)

FEATURES = ["chat", "voice", "booking", "emergency"]
UNAUTHORIZED_MESSAGE = "Unauthorized or invalid session"

Handler = Callable[[str, Dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class EventRoute:
    """Handler and the event its failures are reported on."""
    handler: Handler
    error_event: str
    error_message: str
    requires_auth: bool = True


class CommandDispatcher:
    """
    Per-connection state machine over the registry.

    States are implicit: a connection with no registry record is
    unauthenticated, one with a record is active, and a removed one is
    closed. Outbound delivery goes through an emitter with the
    ConnectionManager interface (send, send_many, broadcast).
    """

    def __init__(
        self,
        registry: SessionRegistry,
        emitter,
        orchestrator: ResponseOrchestrator,
        booking_service: BookingService,
        alerts: AlertService
    ):
        self.registry = registry
        self.emitter = emitter
        self.orchestrator = orchestrator
        self.booking_service = booking_service
        self.alerts = alerts

        self._routes: Dict[str, EventRoute] = {
            'user-connect': EventRoute(self._on_user_connect, 'connection-error', 'Connection failed', False),
            'chat-message': EventRoute(self._on_chat_message, 'chat-error', 'Failed to process message'),
            'chat-stream-request': EventRoute(self._on_chat_stream, 'chat-stream-error', 'Failed to start streaming'),
            'voice-command': EventRoute(self._on_voice_command, 'voice-error', 'Failed to process voice command'),
            'voice-stream': EventRoute(self._on_voice_stream, 'voice-stream-error', 'Failed to process voice stream'),
            'wake-word-detected': EventRoute(self._on_wake_word, 'wake-word-error', 'Failed to process wake word'),
            'booking-request': EventRoute(self._on_booking_request, 'booking-error', 'Failed to process booking'),
            'booking-simulation': EventRoute(self._on_booking_simulation, 'booking-error', 'Failed to simulate booking'),
            'booking-confirmation': EventRoute(self._on_booking_confirmation, 'booking-error', 'Failed to confirm booking'),
            'emergency-alert': EventRoute(self._on_emergency_alert, 'emergency-error', 'Failed to process emergency alert'),
            'request-status-update': EventRoute(self._on_status_request, 'status-error', 'Failed to get status'),
            'typing-start': EventRoute(self._on_typing_start, 'typing-error', 'Failed to relay typing', False),
            'typing-stop': EventRoute(self._on_typing_stop, 'typing-error', 'Failed to relay typing', False)
        }

    async def dispatch(self, connection_id: str, event: str, data: Dict[str, Any]) -> None:
        """
        Run the handler for one inbound event.

        Never raises. Unknown events get an ``error`` event.
        """
        route = self._routes.get(event)
        if route is None:
            track_socket_event(event, "unknown")
            await self.emitter.send(connection_id, 'error', {
                'error': f"Unknown event: {event}",
                'timestamp': utcnow_iso()
            })
            return

        try:
            if route.requires_auth:
                self._authorize(connection_id, data)
            await route.handler(connection_id, data)
            track_socket_event(event)

        except GuardianError as e:
            logger.warning(
                f"{event} rejected: {e.message}",
                extra={"connection_id": connection_id, "event": event, "user_id": data.get('userId')}
            )
            track_socket_event(event, type(e).__name__)
            await self.emitter.send(connection_id, route.error_event, {
                'error': e.message,
                'timestamp': utcnow_iso()
            })

        except Exception as e:
            logger.error(
                f"{event} handler error: {e}",
                extra={"connection_id": connection_id, "event": event, "user_id": data.get('userId')},
                exc_info=True
            )
            track_socket_event(event, "error")
            await self.emitter.send(connection_id, route.error_event, {
                'error': route.error_message,
                'timestamp': utcnow_iso()
            })

    def handle_disconnect(self, connection_id: str) -> None:
        """Close the connection's session. Later events for it are unauthenticated."""
        self.registry.remove(connection_id)

    def _authorize(self, connection_id: str, data: Dict[str, Any]) -> None:
        if not self.registry.authorize(connection_id, data.get('userId')):
            raise AuthorizationError(UNAUTHORIZED_MESSAGE)
        self.registry.touch(connection_id)

    # ===========================
    # Session
    # ===========================

    async def _on_user_connect(self, connection_id: str, data: Dict[str, Any]) -> None:
        user_id = data.get('userId')
        if not user_id or not isinstance(user_id, str):
            raise ValidationError("User ID is required")

        record = self.registry.register(
            connection_id,
            user_id,
            data.get('sessionId'),
            data.get('preferences')
        )

        await self.emitter.send(connection_id, 'connection-confirmed', {
            'userId': record.user_id,
            'sessionId': record.session_id,
            'timestamp': utcnow_iso(),
            'features': FEATURES
        })

    async def _on_status_request(self, connection_id: str, data: Dict[str, Any]) -> None:
        record = self.registry.get(connection_id)
        await self.emitter.send(connection_id, 'status-update', {
            'userId': record.user_id,
            'isOnline': True,
            'lastActivity': record.last_activity.isoformat(),
            'sessionId': record.session_id,
            'features': FEATURES,
            'timestamp': utcnow_iso()
        })

    async def _relay_typing(self, connection_id: str, data: Dict[str, Any], is_typing: bool) -> None:
        # Best effort: anything but a matching registered sender is dropped quietly
        if not self.registry.authorize(connection_id, data.get('userId')):
            logger.debug(f"Ignoring typing event from {connection_id}")
            return

        user_id = data['userId']
        await self.emitter.send_many(
            self.registry.session_connections(user_id, data.get('conversationId')),
            'user-typing',
            {'userId': user_id, 'isTyping': is_typing, 'timestamp': utcnow_iso()},
            exclude=connection_id
        )

    async def _on_typing_start(self, connection_id: str, data: Dict[str, Any]) -> None:
        await self._relay_typing(connection_id, data, True)

    async def _on_typing_stop(self, connection_id: str, data: Dict[str, Any]) -> None:
        await self._relay_typing(connection_id, data, False)

    # ===========================
    # Chat
    # ===========================

    async def _on_chat_message(self, connection_id: str, data: Dict[str, Any]) -> None:
        user_id = data['userId']
        message = data.get('message')
        if not message or not isinstance(message, str):
            raise ValidationError("Message is required")

        await self.emitter.send(connection_id, 'chat-processing', {
            'message': 'Processing your message...',
            'timestamp': utcnow_iso()
        })

        result = await self.orchestrator.chat(
            user_id,
            message,
            data.get('conversationId'),
            bool(data.get('useReasoner'))
        )

        await self.emitter.send(connection_id, 'chat-response', result)

        await self.emitter.send_many(
            self.registry.user_connections(user_id),
            'chat-sync',
            {
                'userMessage': message,
                'assistantResponse': result['response'],
                'conversationId': result['conversationId'],
                'timestamp': result['timestamp']
            },
            exclude=connection_id
        )

    async def _on_chat_stream(self, connection_id: str, data: Dict[str, Any]) -> None:
        user_id = data['userId']
        message = data.get('message')
        if not message or not isinstance(message, str):
            raise ValidationError("Message is required")

        stream = self.orchestrator.stream_chat(user_id, message, data.get('conversationId'))
        try:
            async for frame in stream:
                if frame['type'] == 'chunk':
                    delivered = await self.emitter.send(connection_id, 'chat-stream-chunk', {
                        'chunk': frame['content'],
                        'timestamp': frame['timestamp']
                    })
                    if not delivered:
                        # Connection gone; stop consuming so nothing is recorded
                        logger.info(f"Stream consumer {connection_id} went away")
                        return
                elif frame['type'] == 'complete':
                    await self.emitter.send(connection_id, 'chat-stream-complete', {
                        'fullResponse': frame['fullResponse'],
                        'source': frame['source'],
                        'conversationId': frame['conversationId'],
                        'timestamp': frame['timestamp']
                    })
                else:
                    await self.emitter.send(connection_id, 'chat-stream-error', {
                        'error': frame['content'],
                        'timestamp': frame['timestamp']
                    })
        finally:
            await stream.aclose()

    # ===========================
    # Voice
    # ===========================

    async def _on_voice_command(self, connection_id: str, data: Dict[str, Any]) -> None:
        user_id = data['userId']
        transcript = data.get('transcript')
        if not transcript or not isinstance(transcript, str):
            raise ValidationError("Transcript is required")

        result = await self.orchestrator.voice(
            user_id,
            transcript,
            data.get('sessionId'),
            data.get('confidence'),
            data.get('language') or 'en'
        )

        await self.emitter.send(connection_id, 'voice-response', result)

        advisory = {
            Intent.BOOKING.value: 'voice-booking-detected',
            Intent.EMERGENCY.value: 'voice-emergency-detected'
        }.get(result.get('commandType'))

        if advisory:
            await self.emitter.send(connection_id, advisory, {
                'transcript': transcript,
                'commandType': result['commandType'],
                'timestamp': utcnow_iso()
            })

    async def _on_voice_stream(self, connection_id: str, data: Dict[str, Any]) -> None:
        is_complete = bool(data.get('isComplete'))

        await self.emitter.send(connection_id, 'voice-stream-ack', {
            'received': True,
            'timestamp': utcnow_iso(),
            'isComplete': is_complete
        })

        if is_complete:
            await self.emitter.send(connection_id, 'voice-stream-processed', {
                'message': 'Audio stream processed',
                'timestamp': utcnow_iso()
            })

    async def _on_wake_word(self, connection_id: str, data: Dict[str, Any]) -> None:
        result = wake_word_response(data.get('wakeWord') or '')
        await self.emitter.send(connection_id, 'wake-word-response', {
            **result,
            'timestamp': utcnow_iso()
        })

    # ===========================
    # Booking
    # ===========================

    async def _on_booking_request(self, connection_id: str, data: Dict[str, Any]) -> None:
        user_id = data['userId']

        await self.emitter.send(connection_id, 'booking-processing', {
            'message': 'Processing your booking request...',
            'timestamp': utcnow_iso()
        })

        booking, result = await self.booking_service.create(user_id, data.get('bookingData') or {})
        await self._announce_booking(
            connection_id,
            user_id,
            booking,
            result.backend,
            f"{booking['type'].capitalize()} booking confirmed successfully"
        )

    async def _on_booking_simulation(self, connection_id: str, data: Dict[str, Any]) -> None:
        booking_data = data.get('bookingData') or {}
        options = self.booking_service.simulate(booking_data)

        await self.emitter.send(connection_id, 'booking-options', {
            'options': options,
            'searchCriteria': booking_data,
            'timestamp': utcnow_iso()
        })

    async def _on_booking_confirmation(self, connection_id: str, data: Dict[str, Any]) -> None:
        user_id = data['userId']
        option = data.get('selectedOption') or data.get('bookingData')

        booking, result = await self.booking_service.confirm_option(user_id, option)
        await self._announce_booking(connection_id, user_id, booking, result.backend, "Booking confirmed successfully")

    async def _announce_booking(
        self,
        connection_id: str,
        user_id: str,
        booking: Dict[str, Any],
        backend: Optional[str],
        message: str
    ) -> None:
        await self.emitter.send(connection_id, 'booking-confirmed', {
            'booking': booking,
            'message': message,
            'timestamp': utcnow_iso(),
            'storage': backend
        })

        await self.emitter.send_many(
            self.registry.user_connections(user_id),
            'booking-notification',
            {
                'bookingId': booking['bookingId'],
                'type': booking['type'],
                'status': booking['status'],
                'message': f"New {booking['type']} booking confirmed",
                'timestamp': utcnow_iso()
            },
            exclude=connection_id
        )

    # ===========================
    # Emergency
    # ===========================

    async def _on_emergency_alert(self, connection_id: str, data: Dict[str, Any]) -> None:
        user_id = data['userId']
        emergency_type = data.get('emergencyType') or data.get('type')

        alert = await self.alerts.raise_alert(
            user_id,
            emergency_type,
            data.get('location'),
            data.get('additionalInfo'),
            priority="critical"
        )

        await self.emitter.send(connection_id, 'emergency-response', {
            'message': emergency_message(alert['type']),
            'emergency': alert,
            'timestamp': alert['timestamp'],
            'priority': 'critical'
        })

        # The one system-wide fan-out, every open connection included
        await self.emitter.broadcast('emergency-broadcast', {
            'alertId': alert['alertId'],
            'userId': user_id,
            'type': alert['type'],
            'location': alert['location'],
            'priority': 'critical',
            'timestamp': alert['timestamp']
        })


__all__ = ['CommandDispatcher', 'EventRoute', 'FEATURES', 'UNAUTHORIZED_MESSAGE']
