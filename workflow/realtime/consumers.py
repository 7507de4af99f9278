import json

from channels.generic.websocket import AsyncWebsocketConsumer

from workflow.services.notify import GROUP


class QueueUpdatesConsumer(AsyncWebsocketConsumer):
    """Pushes queue-changed events to department screens.

    Clients may send ``{"queues": ["lab", ...]}`` to only receive events
    touching those queues.
    """

    async def connect(self):
        user = self.scope.get("user")
        if not (user and user.is_authenticated):
            await self.close(code=4401)
            return
        self.queues = set()
        await self.channel_layer.group_add(GROUP, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "message": "connected", "role": user.role}))

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(GROUP, self.channel_name)

    async def receive(self, text_data=None, bytes_data=None):
        try:
            msg = json.loads(text_data or "{}")
        except json.JSONDecodeError:
            await self.send(json.dumps({"type": "error", "message": "invalid json"}))
            return
        self.queues = set(msg.get("queues") or [])
        await self.send(json.dumps({"type": "subscribed", "queues": sorted(self.queues)}))

    async def queue_changed(self, event):
        # event: {"type": "queue.changed", "action": ..., "visit_id": ..., "queues": [...]}
        if self.queues and not self.queues.intersection(event.get("queues", [])):
            return
        await self.send(json.dumps(event))
