from .user import Profile
from .linked_item_credential import LinkedItemCredential
