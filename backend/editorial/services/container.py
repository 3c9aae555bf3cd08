"""
Wiring of the workflow services around one set of collaborators.
"""
from dataclasses import dataclass
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from editorial.core.config import Settings, settings
from .blob_store import BlobStore
from .doi_registrar import DoiRegistrar, create_registrar
from .doi_service import DoiService
from .issue_service import IssueService
from .manuscript_service import ManuscriptService
from .notification_service import NotificationService, Notifier
from .review_service import ReviewService
from .user_service import UserService


@dataclass
class EditorialServices:
    users: UserService
    manuscripts: ManuscriptService
    reviews: ReviewService
    doi: DoiService
    issues: IssueService
    notifications: NotificationService

    @classmethod
    def build(
        cls,
        db: AsyncIOMotorDatabase,
        notifier: Optional[Notifier] = None,
        registrar: Optional[DoiRegistrar] = None,
        blob_store: Optional[BlobStore] = None,
        config: Optional[Settings] = None
    ) -> "EditorialServices":
        config = config or settings
        notifications = NotificationService(db)
        notifier = notifier or notifications
        registrar = registrar or create_registrar(config.doi_registrar)

        users = UserService(db)
        manuscripts = ManuscriptService(db, notifier, blob_store, users, config)
        reviews = ReviewService(db, notifier, manuscripts, users, config)
        doi = DoiService(db, registrar, manuscripts, config)
        issues = IssueService(db, notifier, manuscripts, doi, config)
        return cls(
            users=users, manuscripts=manuscripts, reviews=reviews, doi=doi, issues=issues,
            notifications=notifications
        )
