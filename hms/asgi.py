"""
ASGI entrypoint serving the API over HTTP and queue updates over
WebSocket (``/ws/queues/``).
"""
import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "hms.settings")

# the consumer imports models, so the app registry must be ready first
import django  # noqa: E402
django.setup()  # noqa: E402

from django.core.asgi import get_asgi_application  # noqa: E402
from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.auth import AuthMiddlewareStack  # noqa: E402
from django.urls import path  # noqa: E402

from workflow.realtime.consumers import QueueUpdatesConsumer  # noqa: E402

django_asgi_app = get_asgi_application()

websocket_urlpatterns = [
    path("ws/queues/", QueueUpdatesConsumer.as_asgi()),
]

application = ProtocolTypeRouter({
    "http": django_asgi_app,
    "websocket": AuthMiddlewareStack(URLRouter(websocket_urlpatterns)),
})
