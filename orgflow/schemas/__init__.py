from .invitations import InvitationCreate, InvitationResponse

__all__ = ["InvitationCreate", "InvitationResponse"]
