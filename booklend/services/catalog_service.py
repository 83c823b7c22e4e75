from flask import current_app

from booklend.errors import Conflict, NotFound
from booklend.models.title import Title
from booklend.repositories.borrow_repo import BorrowRepo
from booklend.repositories.title_repo import TitleRepo
from booklend.session import SessionContext

EDITABLE_FIELDS = ("title", "author_id", "author_name", "category", "cover_url", "description")


def _clamp_copies(title: Title):
    if title.total_copies is None or title.total_copies < 0:
        title.total_copies = 0
    if title.available_copies is None or title.available_copies < 0:
        title.available_copies = 0
    if title.available_copies > title.total_copies:
        title.available_copies = title.total_copies


class CatalogService:
    @staticmethod
    def list_titles(category: str | None = None, search: str | None = None):
        return TitleRepo.list_all(category=category, search=search)

    @staticmethod
    def get_title(title_id: int) -> Title:
        title = TitleRepo.get(title_id)
        if not title:
            raise NotFound(f"Title {title_id} not found")
        return title

    @staticmethod
    def create_title(ctx: SessionContext, data: dict) -> Title:
        ctx.require_librarian()
        name = (data.get("title") or "").strip()
        if not name:
            raise ValueError("title is required")

        total = int(data.get("total_copies", 1))
        title = Title(
            title=name,
            author_id=data.get("author_id"),
            author_name=(data.get("author_name") or "").strip(),
            category=(data.get("category") or "").strip(),
            cover_url=data.get("cover_url"),
            description=data.get("description"),
            total_copies=total,
            available_copies=int(data.get("available_copies", total)),
            borrow_count=0,
        )
        _clamp_copies(title)
        return TitleRepo.create(title)

    @staticmethod
    def update_title(ctx: SessionContext, title_id: int, data: dict) -> Title:
        ctx.require_librarian()
        title = CatalogService.get_title(title_id)
        for key in EDITABLE_FIELDS:
            if key in data and data[key] is not None:
                setattr(title, key, data[key])

        if data.get("total_copies") is not None:
            # copies on loan stay on loan; availability moves by the same delta
            new_total = int(data["total_copies"])
            on_loan = title.total_copies - title.available_copies
            if new_total < on_loan:
                raise Conflict(f"{on_loan} copies are on loan; total cannot drop to {new_total}")
            title.available_copies = new_total - on_loan
            title.total_copies = new_total
        if data.get("available_copies") is not None:
            title.available_copies = int(data["available_copies"])

        _clamp_copies(title)
        TitleRepo.update()
        return title

    @staticmethod
    def delete_title(ctx: SessionContext, title_id: int):
        ctx.require_librarian()
        title = CatalogService.get_title(title_id)
        if BorrowRepo.count_for_title(title_id) > 0:
            # history rows keep a foreign key to the title
            raise Conflict("This title has borrow records and cannot be deleted")
        TitleRepo.delete(title)

    # ---- inventory ledger

    @staticmethod
    def take_copy(title: Title):
        """
        Check out one copy for an approved borrow. Not committed here; the
        caller commits together with the borrow record.
        """
        if current_app.config.get("INVENTORY_CONDITIONAL_UPDATE", True):
            if not TitleRepo.take_copy_if_available(title.id):
                raise Conflict(f"No copies of '{title.title}' are available")
            return title

        # read-then-write: a concurrent approval can read the same count
        if (title.available_copies or 0) < 1:
            raise Conflict(f"No copies of '{title.title}' are available")
        title.available_copies = title.available_copies - 1
        title.borrow_count = (title.borrow_count or 0) + 1
        return title

    @staticmethod
    def put_back_copy(title: Title):
        if title.total_copies is not None:
            title.available_copies = min(title.total_copies, (title.available_copies or 0) + 1)
        else:
            title.available_copies = (title.available_copies or 0) + 1
        return title
