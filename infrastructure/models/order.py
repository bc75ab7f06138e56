"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    订单数据库模型（支付视角）

    订单的创建与履约由订单子系统负责；支付核心只读写支付相关字段，
    并通过 version 列实现乐观锁。
    """
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="total_amount_non_negative"),
    )

    # 主键
    id = Column(String(64), primary_key=True)

    # 归属与金额（创建后不可变）
    owner_id = Column(String(64), index=True, nullable=False, comment="下单用户ID")
    total_amount = Column(Numeric(12, 2), nullable=False, comment="订单总额（主币种单位）")
    currency = Column(String(3), nullable=False, default="usd", comment="ISO-4217 币种")

    # 状态
    order_status = Column(String(20), nullable=False, default="PENDING", comment="履约状态")
    payment_status = Column(String(20), nullable=False, default="PENDING", comment="支付状态")

    # 支付信息
    payment_intent_id = Column(String(255), unique=True, nullable=True, comment="当前支付意图ID")
    payment_method = Column(String(32), nullable=True, comment="支付方式")

    # 乐观锁版本号
    version = Column(Integer, nullable=False, default=0, comment="乐观锁版本号")

    # 时间信息
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间",
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间",
    )

    def __repr__(self):
        return f"<Order(id={self.id}, payment_status={self.payment_status}, version={self.version})>"
