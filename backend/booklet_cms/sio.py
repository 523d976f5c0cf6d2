import logging

import socketio
from asgiref.sync import async_to_sync
from django.conf import settings
from django.db import transaction

logger = logging.getLogger(__name__)

sio = socketio.AsyncServer(async_mode='asgi', cors_allowed_origins=settings.SOCKETIO_CORS_ORIGINS)


def booklet_room(booklet_id):
    return f"booklet:{booklet_id}"


@sio.event
async def connect(sid, environ):
    logger.info("SocketIO client connected: %s", sid)


@sio.event
async def disconnect(sid):
    logger.info("SocketIO client disconnected: %s", sid)


@sio.event
async def join_booklet(sid, booklet_id):
    await sio.enter_room(sid, booklet_room(booklet_id))


def _emit(event, data, room):
    try:
        async_to_sync(sio.emit)(event, data, room=room)
    except Exception:
        # Clients re-query on reconnect; a lost push never fails the write.
        logger.warning("Socket emit failed for %s", event, exc_info=True)


def emit_booklet_update(booklet_id, kind, **ids):
    """Push a ``booklet_update`` event to clients watching this booklet once the
    current transaction commits."""
    data = {'booklet_id': str(booklet_id), 'kind': kind}
    data.update({key: str(value) if value is not None else None for key, value in ids.items()})
    transaction.on_commit(lambda: _emit('booklet_update', data, booklet_room(booklet_id)))
