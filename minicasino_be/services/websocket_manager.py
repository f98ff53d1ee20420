"""
WebSocket Manager for Real-time Game Communications
Broadcasts cascade steps, spin results, bonus/autoplay state and sound cues to game rooms
"""

from flask_socketio import emit, join_room, leave_room
from flask import request
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)

GAME_ROOMS = ('tumble', 'classic')
SOUND_EVENTS = ('spin-start', 'win', 'lose')


class WebSocketManager:
    def __init__(self, app=None, socketio=None):
        self.socketio = socketio
        self.connected_clients = {}  # socket_id -> {rooms, connected_at}
        self.game_rooms = {room: set() for room in GAME_ROOMS}

        if app and socketio:
            self.init_app(app)

    def init_app(self, app):
        """Initialize WebSocket handlers"""
        self.socketio.on_event('connect', self.handle_connect)
        self.socketio.on_event('disconnect', self.handle_disconnect)
        self.socketio.on_event('join_room', self.handle_join_room)
        self.socketio.on_event('leave_room', self.handle_leave_room)

    def handle_connect(self, auth=None):
        socket_id = request.sid
        self.connected_clients[socket_id] = {
            'rooms': set(),
            'connected_at': datetime.now(timezone.utc)
        }
        logger.info(f"Client connected via WebSocket (socket: {socket_id})")
        emit('connection_status', {'status': 'connected'})
        return True

    def handle_disconnect(self, reason=None):
        socket_id = request.sid
        client = self.connected_clients.pop(socket_id, None)
        if client:
            for room in client['rooms']:
                self.game_rooms.get(room, set()).discard(socket_id)
            logger.info(f"Client {socket_id} disconnected from WebSocket")

    def handle_join_room(self, data):
        room_name = (data or {}).get('room')
        if room_name not in self.game_rooms:
            emit('error', {'message': f"Room must be one of {list(GAME_ROOMS)}"})
            return

        socket_id = request.sid
        join_room(room_name)
        self.game_rooms[room_name].add(socket_id)
        self.connected_clients.setdefault(socket_id, {'rooms': set(), 'connected_at': datetime.now(timezone.utc)})
        self.connected_clients[socket_id]['rooms'].add(room_name)

        logger.info(f"Client {socket_id} joined room: {room_name}")
        emit('room_joined', {'room': room_name, 'success': True})

    def handle_leave_room(self, data=None):
        socket_id = request.sid
        client = self.connected_clients.get(socket_id)
        if not client:
            return
        room_name = data.get('room') if data else None
        rooms = [room_name] if room_name else list(client['rooms'])
        for room in rooms:
            leave_room(room)
            self.game_rooms.get(room, set()).discard(socket_id)
            client['rooms'].discard(room)
        logger.info(f"Client {socket_id} left rooms: {rooms}")
        emit('rooms_left', {'rooms': rooms})

    # Event Broadcasting Methods
    def _broadcast(self, event, game, payload):
        if not self.socketio:
            return
        self.socketio.emit(
            event,
            {
                'type': event,
                'game': game,
                **payload,
                'timestamp': datetime.now(timezone.utc).isoformat()
            },
            room=game
        )

    def emit_cascade_step(self, game, step_data):
        self._broadcast('cascade_step', game, {'step': step_data})

    def emit_spin_result(self, game, result_data):
        self._broadcast('spin_result', game, {'result': result_data})
        logger.debug(f"Broadcasted {game} spin result to {len(self.game_rooms.get(game, ()))} clients")

    def emit_bonus_state(self, game, bonus_data):
        self._broadcast('bonus_state', game, {'bonus': bonus_data})

    def emit_autoplay_state(self, game, autoplay_data, stopped_reason=None):
        self._broadcast('autoplay_state', game, {'autoplay': autoplay_data, 'stopped_reason': stopped_reason})

    def notify_sound(self, game, sound_event):
        """Fire-and-forget sound cue. Delivery problems are logged, never raised."""
        if sound_event not in SOUND_EVENTS:
            logger.warning(f"Ignoring unknown sound event '{sound_event}' for {game}")
            return
        try:
            self._broadcast('sound', game, {'event': sound_event})
        except Exception as e:
            logger.warning(f"Sound notification '{sound_event}' for {game} failed: {e}")

    def get_room_clients_count(self, game):
        return len(self.game_rooms.get(game, ()))


# Global instance
websocket_manager = WebSocketManager()
