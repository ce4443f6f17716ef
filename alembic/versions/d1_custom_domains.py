"""Create tenant and tenantdomain tables

Revision ID: d1_custom_domains
"""
from alembic import op
import sqlalchemy as sa

revision = "d1_custom_domains"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tenant",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("plan", sa.String(), server_default="free"),
        sa.Column("status", sa.String(), server_default="active"),
        sa.Column("subdomain", sa.String(63), unique=True, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_tenant_id", "tenant", ["id"])
    op.create_index("ix_tenant_name", "tenant", ["name"])

    op.create_table(
        "tenantdomain",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(as_uuid=True), sa.ForeignKey("tenant.id"), nullable=False),
        sa.Column("hostname", sa.String(255), nullable=True),
        sa.Column("canonical_preference", sa.String(16), server_default="apex"),
        sa.Column("host_type", sa.String(32), nullable=False, server_default="platform_subdomain"),
        sa.Column("monitoring_status", sa.String(16), nullable=False, server_default="inactive"),
        sa.Column("monitoring_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("check_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("provider_domain_added", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cert_retry_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("setup_error", sa.Text(), nullable=True),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_tenantdomain_id", "tenantdomain", ["id"])
    op.create_index("ix_tenantdomain_tenant_id", "tenantdomain", ["tenant_id"], unique=True)
    op.create_index("ix_tenantdomain_hostname", "tenantdomain", ["hostname"])
    # Monitoring sweep filters on status
    op.create_index("ix_tenantdomain_monitoring_status", "tenantdomain", ["monitoring_status"])


def downgrade() -> None:
    op.drop_index("ix_tenantdomain_monitoring_status", table_name="tenantdomain")
    op.drop_index("ix_tenantdomain_hostname", table_name="tenantdomain")
    op.drop_index("ix_tenantdomain_tenant_id", table_name="tenantdomain")
    op.drop_index("ix_tenantdomain_id", table_name="tenantdomain")
    op.drop_table("tenantdomain")
    op.drop_index("ix_tenant_name", table_name="tenant")
    op.drop_index("ix_tenant_id", table_name="tenant")
    op.drop_table("tenant")
