from app.db.base_class import Base
from app.models.tenant import Tenant
from app.models.tenant_domain import TenantDomain
