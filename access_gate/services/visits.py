from sqlalchemy import select, update

from ..models import AccessLink, LinkVisitor, db
from .storage import insert_if_absent, store_guard


def record_visit(link_id: int, visitor_id: str) -> None:
    # Both statements are atomic at the store; no read-modify-write here
    with store_guard('record visit'):
        db.session.execute(
            update(AccessLink)
            .where(AccessLink.id == link_id)
            .values(visits=AccessLink.visits + 1)
        )
        if visitor_id:
            insert_if_absent(LinkVisitor, link_id=link_id, visitor_id=str(visitor_id)[:128])
        db.session.commit()


def visit_summary(link: AccessLink) -> dict:
    with store_guard('visit summary'):
        visits = db.session.execute(
            select(AccessLink.visits).where(AccessLink.id == link.id)
        ).scalar_one()
        visitors = db.session.execute(
            select(LinkVisitor.visitor_id)
            .where(LinkVisitor.link_id == link.id)
            .order_by(LinkVisitor.id)
        ).scalars().all()
    return {
        'token': link.token,
        'targetId': link.target_id,
        'visits': visits,
        'uniqueVisitors': len(visitors),
        'visitors': list(visitors),
    }
