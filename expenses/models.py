from datetime import datetime
from decimal import Decimal

from flask_login import UserMixin
from sqlalchemy.orm import relationship

from expenses import db


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password = db.Column(db.String(256), nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    active = db.Column(db.Boolean, default=False, nullable=False)
    timezone = db.Column(db.String(50))
    purchases = db.relationship("Purchase", backref="creator", lazy=True)


class Team(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)

    purchases = relationship("Purchase", back_populates="team")


class Purchase(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    purchase_date = db.Column(db.Date, nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey("team.id"), nullable=False)
    location_name = db.Column(db.String(200), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    created_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow
    )

    team = relationship("Team", back_populates="purchases")
    items = relationship(
        "PurchaseItem",
        backref="purchase",
        cascade="all, delete-orphan",
        order_by="PurchaseItem.position",
    )

    __table_args__ = (
        db.Index("ix_purchase_purchase_date", "purchase_date"),
        db.Index("ix_purchase_team_id", "team_id"),
    )

    @property
    def total(self) -> Decimal:
        """Sum of the stored item subtotals."""
        return sum((item.subtotal for item in self.items), Decimal("0.00"))


class PurchaseItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(
        db.Integer, db.ForeignKey("purchase.id"), nullable=False
    )
    position = db.Column(
        db.Integer, nullable=False, default=0, server_default="0"
    )
    product_name = db.Column(db.String(200), nullable=False)
    unit_of_measure = db.Column(db.String(20), nullable=False)
    quantity = db.Column(db.Numeric(12, 3, asdecimal=True), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2, asdecimal=True), nullable=False)
    # Computed once when the item is written; never recomputed on read.
    subtotal = db.Column(db.Numeric(12, 2, asdecimal=True), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    __table_args__ = (
        db.Index("ix_purchase_item_purchase_id", "purchase_id"),
        db.Index("ix_purchase_item_product_name", "product_name"),
    )


class ActivityLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    activity = db.Column(db.String(255), nullable=False)
    timestamp = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    user = relationship("User", backref="activity_logs")


class Setting(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    value = db.Column(db.String(255), nullable=True)

    @classmethod
    def get_value(cls, name: str, default=None):
        setting = cls.query.filter_by(name=name).first()
        if setting is None or setting.value in (None, ""):
            return default
        return setting.value
