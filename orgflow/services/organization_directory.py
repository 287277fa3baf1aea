from typing import Optional, Union
from sqlmodel import Session

from ..models.organization import Organization


class OrganizationDirectory:
    """Read-only view over the organization table used when rendering invitations."""

    def __init__(self, engine):
        self.engine = engine

    def _get(self, organization_id: Union[int, str]) -> Optional[Organization]:
        try:
            org_id = int(organization_id)
        except (TypeError, ValueError):
            return None
        with Session(self.engine) as session:
            return session.get(Organization, org_id)

    def find_organization_name(self, organization_id: Union[int, str]) -> Optional[str]:
        organization = self._get(organization_id)
        return organization.name if organization else None

    def organization_exists(self, organization_id: Union[int, str]) -> bool:
        return self._get(organization_id) is not None
