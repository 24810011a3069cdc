"""create_gateway_tables

Revision ID: 3b1f6c2a9d10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b1f6c2a9d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

AMOUNT = sa.Numeric(precision=18, scale=6)


def _timestamps(with_updated: bool = True) -> list:
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, comment='创建时间'),
    ]
    if with_updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, comment='更新时间')
        )
    return columns


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False, comment='用户ID（UUID）'),
        sa.Column('email', sa.String(length=255), nullable=False, comment='邮箱'),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id'),
        comment='商户账号'
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'payment_sessions',
        sa.Column('id', sa.String(length=36), nullable=False, comment='支付会话ID（UUID）'),
        sa.Column('user_id', sa.String(length=36), nullable=False, comment='所属商户用户ID'),
        sa.Column('amount', AMOUNT, nullable=False, comment='支付金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD', comment='计价货币 ISO-4217'),
        sa.Column('network', sa.String(length=32), nullable=False, server_default='polygon', comment='区块链网络: polygon/ethereum'),
        sa.Column('token', sa.String(length=16), nullable=False, server_default='USDC', comment='稳定币: USDC/USDT'),
        sa.Column('merchant_address', sa.String(length=64), nullable=False, comment='商户收款地址'),
        sa.Column('customer_address', sa.String(length=64), nullable=True, comment='付款方地址'),
        sa.Column('tx_hash', sa.String(length=80), nullable=True, comment='付款交易哈希'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING', comment='支付状态: PENDING/CONFIRMING/COMPLETED/FAILED/REFUNDED'),
        sa.Column('metadata', sa.JSON(), nullable=True, comment='扩展元数据'),
        *_timestamps(),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True, comment='支付完成时间'),
        sa.PrimaryKeyConstraint('id'),
        comment='支付会话'
    )
    op.create_index('ix_payment_sessions_user_id', 'payment_sessions', ['user_id'])
    op.create_index('ix_payment_sessions_status', 'payment_sessions', ['status'])
    op.create_index('ix_payment_sessions_tx_hash', 'payment_sessions', ['tx_hash'])
    op.create_index('ix_payment_sessions_created_at', 'payment_sessions', ['created_at'])
    op.create_index('ix_payment_sessions_user_status', 'payment_sessions', ['user_id', 'status'])

    op.create_table(
        'refunds',
        sa.Column('id', sa.String(length=36), nullable=False, comment='退款ID（UUID）'),
        sa.Column('payment_session_id', sa.String(length=36), nullable=False, comment='关联的支付会话ID'),
        sa.Column('amount', AMOUNT, nullable=False, comment='退款金额'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING', comment='退款状态: PENDING/PROCESSING/COMPLETED/FAILED'),
        sa.Column('reason', sa.Text(), nullable=True, comment='退款原因'),
        sa.Column('tx_hash', sa.String(length=80), nullable=True, comment='退款交易哈希'),
        sa.Column('block_number', sa.BigInteger(), nullable=True, comment='交易所在区块高度'),
        *_timestamps(),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True, comment='退款完成（达到最终性）时间'),
        sa.ForeignKeyConstraint(['payment_session_id'], ['payment_sessions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        comment='退款'
    )
    op.create_index('ix_refunds_payment_session_id', 'refunds', ['payment_session_id'])
    op.create_index('ix_refunds_status', 'refunds', ['status'])
    op.create_index('ix_refunds_tx_hash', 'refunds', ['tx_hash'])
    op.create_index('ix_refunds_created_at', 'refunds', ['created_at'])
    op.create_index('ix_refunds_payment_status', 'refunds', ['payment_session_id', 'status'])

    op.create_table(
        'payment_links',
        sa.Column('id', sa.String(length=36), nullable=False, comment='链接ID（UUID）'),
        sa.Column('user_id', sa.String(length=36), nullable=False, comment='所属商户用户ID'),
        sa.Column('short_code', sa.String(length=8), nullable=False, comment='8 位 base62 短码'),
        sa.Column('name', sa.String(length=200), nullable=True, comment='链接名称'),
        sa.Column('amount', AMOUNT, nullable=True, comment='固定金额（为空时由付款方填写）'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD', comment='计价货币'),
        sa.Column('network', sa.String(length=32), nullable=False, server_default='polygon', comment='区块链网络'),
        sa.Column('token', sa.String(length=16), nullable=False, server_default='USDC', comment='稳定币'),
        sa.Column('merchant_address', sa.String(length=64), nullable=False, comment='商户收款地址'),
        sa.Column('success_url', sa.String(length=2048), nullable=True, comment='支付成功跳转地址'),
        sa.Column('cancel_url', sa.String(length=2048), nullable=True, comment='取消支付跳转地址'),
        sa.Column('description', sa.Text(), nullable=True, comment='描述'),
        sa.Column('metadata', sa.JSON(), nullable=True, comment='扩展元数据'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true(), comment='是否启用（停用即软删除）'),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0', comment='已兑换次数'),
        sa.Column('max_usages', sa.Integer(), nullable=True, comment='最大兑换次数（为空不限）'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True, comment='过期时间'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('short_code', name='uq_payment_links_short_code'),
        sa.CheckConstraint('max_usages IS NULL OR usage_count <= max_usages', name='ck_payment_links_usage_within_limit'),
        comment='支付链接'
    )
    op.create_index('ix_payment_links_user_id', 'payment_links', ['user_id'])
    op.create_index('ix_payment_links_created_at', 'payment_links', ['created_at'])
    op.create_index('ix_payment_links_user_created', 'payment_links', ['user_id', 'created_at'])

    op.create_table(
        'webhook_endpoints',
        sa.Column('id', sa.String(length=36), nullable=False, comment='端点ID（UUID）'),
        sa.Column('user_id', sa.String(length=36), nullable=False, comment='所属商户用户ID'),
        sa.Column('url', sa.String(length=2048), nullable=False, comment='回调地址'),
        sa.Column('secret', sa.Text(), nullable=False, comment='签名密钥（AES-256-GCM 密文 iv:tag:ciphertext）'),
        sa.Column('events', sa.JSON(), nullable=False, comment='订阅的事件类型列表'),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true(), comment='是否启用'),
        sa.Column('description', sa.String(length=500), nullable=True, comment='描述'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        comment='Webhook 订阅端点'
    )
    op.create_index('ix_webhook_endpoints_user_id', 'webhook_endpoints', ['user_id'])
    op.create_index('ix_webhook_endpoints_user_enabled', 'webhook_endpoints', ['user_id', 'enabled'])

    op.create_table(
        'webhook_deliveries',
        sa.Column('id', sa.String(length=36), nullable=False, comment='投递ID（UUID），即 X-Webhook-ID'),
        sa.Column('endpoint_id', sa.String(length=36), nullable=False, comment='目标端点ID'),
        sa.Column('event_type', sa.String(length=64), nullable=False, comment='事件类型'),
        sa.Column('payload', sa.JSON(), nullable=False, comment='事件信封 {id, type, created_at, data}'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING', comment='投递状态: PENDING/DELIVERING/SUCCEEDED/FAILED'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0', comment='已尝试次数'),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=True, comment='下次重试时间（为空且 FAILED 表示终态）'),
        sa.Column('last_attempt_at', sa.DateTime(timezone=True), nullable=True, comment='最近一次尝试时间'),
        sa.Column('succeeded_at', sa.DateTime(timezone=True), nullable=True, comment='投递成功时间'),
        sa.Column('response_code', sa.Integer(), nullable=True, comment='HTTP 响应码'),
        sa.Column('response_body', sa.Text(), nullable=True, comment='响应体（截断至 10000 字符）'),
        sa.Column('error_message', sa.Text(), nullable=True, comment='错误信息（截断至 1000 字符）'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['endpoint_id'], ['webhook_endpoints.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        comment='Webhook 投递记录'
    )
    op.create_index('ix_webhook_deliveries_endpoint_id', 'webhook_deliveries', ['endpoint_id'])
    op.create_index('ix_webhook_deliveries_event_type', 'webhook_deliveries', ['event_type'])
    op.create_index('ix_webhook_deliveries_status_next', 'webhook_deliveries', ['status', 'next_attempt_at'])

    op.create_table(
        'organizations',
        sa.Column('id', sa.String(length=36), nullable=False, comment='组织ID（UUID）'),
        sa.Column('name', sa.String(length=200), nullable=False, comment='组织名称'),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id'),
        comment='组织'
    )

    op.create_table(
        'team_members',
        sa.Column('id', sa.String(length=36), nullable=False, comment='成员记录ID（UUID）'),
        sa.Column('organization_id', sa.String(length=36), nullable=False, comment='组织ID'),
        sa.Column('user_id', sa.String(length=36), nullable=False, comment='用户ID'),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='MEMBER', comment='角色: OWNER/ADMIN/MEMBER/VIEWER'),
        sa.Column('invited_by', sa.String(length=36), nullable=True, comment='邀请人用户ID'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, comment='加入时间'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'user_id', name='uq_team_members_org_user'),
        comment='组织成员'
    )
    op.create_index('ix_team_members_user_id', 'team_members', ['user_id'])
    op.create_index('ix_team_members_org_role', 'team_members', ['organization_id', 'role'])


def downgrade() -> None:
    op.drop_table('team_members')
    op.drop_table('organizations')
    op.drop_table('webhook_deliveries')
    op.drop_table('webhook_endpoints')
    op.drop_table('payment_links')
    op.drop_table('refunds')
    op.drop_table('payment_sessions')
    op.drop_table('users')
