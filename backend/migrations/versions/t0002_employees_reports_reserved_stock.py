"""employees, reports and reserved stock on sale items

Revision ID: t0002_employees_reports
Revises: t0001_initial
Create Date: 2026-10-18 12:00:00.000000

- sale_items.stock_reserved: units an item holds from tracked stock, so a
  removal or cancellation only gives back what was actually taken
- employees: personnel records, optionally linked to a login
- reports: narrative staff reports
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 't0002_employees_reports'
down_revision = 't0001_initial'
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    # ============================================================================
    # sale_items.stock_reserved
    # ============================================================================
    with op.batch_alter_table('sale_items') as batch_op:
        batch_op.add_column(
            sa.Column('stock_reserved', sa.Integer(), nullable=False, server_default='0')
        )

    # Items of live sales on articles that track stock took their units at add time
    op.execute(
        "UPDATE sale_items SET stock_reserved = quantity "
        "WHERE article_id IN (SELECT id FROM articles WHERE stock_quantity IS NOT NULL) "
        "AND sale_id IN (SELECT id FROM sales WHERE status != 'Cancelled')"
    )

    with op.batch_alter_table('sale_items') as batch_op:
        batch_op.create_check_constraint(
            'ck_sale_items_stock_reserved',
            'stock_reserved >= 0 AND stock_reserved <= quantity',
        )

    # ============================================================================
    # employees
    # ============================================================================
    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('employee_code', sa.String(length=20), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('department', sa.String(length=100), nullable=True),
        sa.Column('role', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('hiring_date', sa.Date(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
        sa.UniqueConstraint('email'),
        sa.CheckConstraint("role IN ('Director', 'Controller', 'Advisor', 'Agent')", name='ck_employees_role'),
        sa.CheckConstraint("status IN ('Active', 'On leave', 'Inactive')", name='ck_employees_status'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_employees_employee_code', 'employees', ['employee_code'], unique=True)
    op.create_index('ix_employees_role', 'employees', ['role'])
    op.create_index('ix_employees_status', 'employees', ['status'])

    # ============================================================================
    # reports
    # ============================================================================
    op.create_table(
        'reports',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('author_user_id', sa.Integer(), nullable=True),
        sa.Column('author_employee_id', sa.Integer(), nullable=True),
        sa.Column('author_name', sa.String(length=255), nullable=False),
        sa.Column('author_role', sa.String(length=50), nullable=False),
        sa.Column('department', sa.String(length=100), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('summary', sa.Text(), nullable=False),
        sa.Column('full_content', sa.Text(), nullable=True),
        sa.Column('priority', sa.String(length=20), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('report_date', sa.Date(), nullable=False),
        sa.Column('report_time', sa.Time(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['author_user_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['author_employee_id'], ['employees.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("priority IN ('Low', 'Normal', 'High', 'Urgent')", name='ck_reports_priority'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_reports_author_employee_id', 'reports', ['author_employee_id'])
    op.create_index('ix_reports_department', 'reports', ['department'])
    op.create_index('ix_reports_category', 'reports', ['category'])
    op.create_index('ix_reports_priority_read', 'reports', ['priority', 'is_read'])
    op.create_index('ix_reports_author_date', 'reports', ['author_user_id', 'report_date'])


def downgrade():
    op.drop_table('reports')
    op.drop_table('employees')
    with op.batch_alter_table('sale_items') as batch_op:
        batch_op.drop_constraint('ck_sale_items_stock_reserved', type_='check')
        batch_op.drop_column('stock_reserved')
