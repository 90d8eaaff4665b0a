from __future__ import annotations

import logging

from supportdesk.core.errors import Unauthenticated
from supportdesk.realtime.collection import LiveCollection, tickets_collection
from supportdesk.realtime.feeds import MessageFeed, TicketFeed
from supportdesk.services.access import ResolvedRole, resolve_role
from supportdesk.services.articles import ArticleService
from supportdesk.services.auth import AuthSession, IdentityProvider
from supportdesk.services.employees import EmployeeRoster
from supportdesk.services.messages import MessageService
from supportdesk.services.routing import AssignmentService
from supportdesk.services.tickets import TicketService
from supportdesk.store.base import Store, Subscription

logger = logging.getLogger(__name__)


class SessionContext:
    """Everything one signed-in client needs, built once and passed around.

    Holds the store, the identity provider and the feeds opened for this
    session. ``sign_out`` releases every feed subscription exactly once.
    """

    def __init__(self, store: Store, identity: IdentityProvider) -> None:
        self.store = store
        self.identity = identity
        self.session: AuthSession | None = None
        self.board: LiveCollection = tickets_collection()
        self._feeds: list[TicketFeed | MessageFeed] = []
        self._identity_subscription: Subscription | None = None

    @property
    def current_user_id(self) -> str | None:
        return self.session.user_id if self.session is not None else None

    async def start(self) -> AuthSession | None:
        self.session = await self.identity.get_current_session()
        if self._identity_subscription is None:
            self._identity_subscription = self.identity.on_session_change(self._on_session_change)
        logger.info("Session started for user id=%s", self.current_user_id)
        return self.session

    def _on_session_change(self, session: AuthSession | None) -> None:
        previous = self.current_user_id
        self.session = session
        if session is None or session.user_id != previous:
            # Another identity must not inherit this user's streams.
            self.close_feeds()
            self.board.clear()

    def require_user(self) -> str:
        if not self.current_user_id:
            raise Unauthenticated("Not signed in")
        return self.current_user_id

    async def role(self) -> ResolvedRole:
        return await resolve_role(self.store, self.current_user_id)

    def ticket_feed(self) -> TicketFeed:
        feed = TicketFeed(self.store, self.board)
        self._feeds.append(feed)
        return feed

    def message_feed(self) -> MessageFeed:
        feed = MessageFeed(self.store)
        self._feeds.append(feed)
        return feed

    def tickets(self) -> TicketService:
        return TicketService(self.store, actor_id=self.current_user_id, board=self.board)

    def messages(self, feed: MessageFeed | None = None) -> MessageService:
        return MessageService(
            self.store,
            actor_id=self.current_user_id,
            tickets=self.tickets(),
            thread=feed.thread if feed is not None else None,
        )

    def assignments(self, feed: MessageFeed | None = None) -> AssignmentService:
        messages = self.messages(feed)
        return AssignmentService(messages.tickets, messages)

    def articles(self) -> ArticleService:
        return ArticleService(self.store, actor_id=self.current_user_id)

    def roster(self) -> EmployeeRoster:
        return EmployeeRoster(self.store)

    def close_feeds(self) -> None:
        feeds, self._feeds = self._feeds, []
        for feed in feeds:
            feed.close()

    async def sign_out(self) -> None:
        self.close_feeds()
        self.board.clear()
        if self._identity_subscription is not None:
            self._identity_subscription.unsubscribe()
            self._identity_subscription = None
        sign_out = getattr(self.identity, "sign_out", None)
        if sign_out is not None:
            await sign_out()
        logger.info("Session closed for user id=%s", self.current_user_id)
        self.session = None
