from supportdesk.models.article import ApprovalRequest, Article, ArticleNote, ArticleTag, ArticleVersion
from supportdesk.models.people import Customer, Employee
from supportdesk.models.ticket import Message, Ticket

__all__ = [
    "ApprovalRequest",
    "Article",
    "ArticleNote",
    "ArticleTag",
    "ArticleVersion",
    "Customer",
    "Employee",
    "Message",
    "Ticket",
]
