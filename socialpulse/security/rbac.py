from fastapi import Request, HTTPException, Depends, Header, status
from sqlalchemy.orm import Session
from socialpulse.db import get_db
from socialpulse.models import User, OrgMember, Org
from socialpulse.security.auth import require_user

def get_current_org_id(
    request: Request,
    user: User = Depends(require_user),
    org_id: str | None = Header(default=None, alias="X-Org-Id"),
    db: Session = Depends(get_db)
) -> int:
    """
    Returns the workspace the request acts on.

    API keys are bound to one workspace. Otherwise an explicit X-Org-Id
    header is honoured when the user is a member (or superadmin), and the
    user's first membership is used when no header is sent.
    """
    if hasattr(request.state, "api_key_org_id"):
        return request.state.api_key_org_id

    target_org_id = None
    if org_id:
        try:
            target_org_id = int(org_id)
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-Org-Id must be an integer")

    if target_org_id:
        if user.is_superadmin:
            return target_org_id

        membership = db.query(OrgMember).filter(
            OrgMember.user_id == user.id,
            OrgMember.org_id == target_org_id
        ).first()
        if membership:
            return target_org_id
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have access to this organization"
        )

    if user.is_superadmin:
        first_org = db.query(Org).order_by(Org.id.asc()).first()
        if first_org:
            return first_org.id
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No organizations exist in the system"
        )

    first_membership = db.query(OrgMember).filter(OrgMember.user_id == user.id).first()
    if not first_membership:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not belong to any organizations"
        )
    return first_membership.org_id
