"""SQLAlchemy models for BuscadorPXT notifications.

All models are imported here so that ``Base.metadata`` knows every table
before ``create_all`` runs. If you add a new model, import it in this file.
"""

from buscador.models.subscription import Subscription
from buscador.models.system_setting import SystemSetting
from buscador.models.user import User
from buscador.models.whatsapp_log import WhatsAppLog

__all__ = [
    "Subscription",
    "SystemSetting",
    "User",
    "WhatsAppLog",
]
