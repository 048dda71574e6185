"""
SQLAlchemy models for the Ispecia CRM.

- Access: roles, users
- Contacts: organizations, persons
- Sales: products, quotes, pipelines, leads, deals
- Work: activities, tasks (comments, time logs), notifications
- Mail: email accounts, messages, tracking, templates
- VoIP: providers, trunks, inbound routes, call logs
"""
from ispecia.models.role import Role, PermissionType
from ispecia.models.user import User

from ispecia.models.organization import Organization
from ispecia.models.person import Person

from ispecia.models.product import Product
from ispecia.models.quote import Quote, QuoteItem
from ispecia.models.pipeline import (
    LeadSource,
    LeadType,
    LeadPipeline,
    LeadStage,
    DealPipeline,
    DealStage,
)
from ispecia.models.lead import Lead
from ispecia.models.deal import Deal, DealStatus

from ispecia.models.activity import Activity, ActivityType
from ispecia.models.task import Task, TaskComment, TaskTimeLog, TaskType, TaskPriority, TaskStatus
from ispecia.models.notification import Notification

from ispecia.models.email import (
    EmailAccount,
    EmailMessage,
    EmailTracking,
    EmailTemplate,
    EmailProvider,
    EmailFolder,
    TrackingEventType,
)
from ispecia.models.voip import (
    VoipProvider,
    VoipProviderType,
    VoipTrunk,
    SipTransport,
    SipAuthMethod,
    InboundRoute,
    RouteDestination,
    CallLog,
    CallDirection,
)

__all__ = [
    "Role",
    "PermissionType",
    "User",
    "Organization",
    "Person",
    "Product",
    "Quote",
    "QuoteItem",
    "LeadSource",
    "LeadType",
    "LeadPipeline",
    "LeadStage",
    "DealPipeline",
    "DealStage",
    "Lead",
    "Deal",
    "DealStatus",
    "Activity",
    "ActivityType",
    "Task",
    "TaskComment",
    "TaskTimeLog",
    "TaskType",
    "TaskPriority",
    "TaskStatus",
    "Notification",
    "EmailAccount",
    "EmailMessage",
    "EmailTracking",
    "EmailTemplate",
    "EmailProvider",
    "EmailFolder",
    "TrackingEventType",
    "VoipProvider",
    "VoipProviderType",
    "VoipTrunk",
    "SipTransport",
    "SipAuthMethod",
    "InboundRoute",
    "RouteDestination",
    "CallLog",
    "CallDirection",
]
