"""SQLAlchemy models for CondoChiaro billing.

All models are imported here so that ``Base.metadata`` knows every table
(used by ``create_all`` in tests and by migration autogenerate). If you add a
new model, import it in this file.
"""

from app.models.admin import Admin
from app.models.condominium import Condominium
from app.models.job import Invoice, Job
from app.models.payment import Payment
from app.models.stripe_event import StripeEvent
from app.models.subscription import Subscription
from app.models.supplier import Supplier

__all__ = [
    "Admin",
    "Condominium",
    "Invoice",
    "Job",
    "Payment",
    "StripeEvent",
    "Subscription",
    "Supplier",
]
