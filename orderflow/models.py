"""
Order Flow: domain models

Covers:
- Users (role / department / production specialty)
- Orders and order items with their workflow state
- Append-only timeline, activity logs, notifications
- Outsource jobs (+ follow-up notes) and dispatch records
- Vendors, uploaded files, WooCommerce import cache, app settings
- HR reference and fact tables
- Audit log

IMPORTANT:
- Department / stage / status columns hold the lowercase values from constants.py.
  Request data is normalized before it reaches these columns.
- assigned_department is always written together with current_stage through
  OrderItem.move_to(); see department_for_stage().
- Deleting an Order cascades to everything that hangs off it.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from flask_login import UserMixin
from sqlalchemy import event
from werkzeug.security import check_password_hash, generate_password_hash

from .constants import (
    ItemStatus,
    OrderSource,
    OutsourceStage,
    Priority,
    Role,
    Stage,
    LeaveStatus,
    NotificationType,
    department_for_stage,
)
from .extensions import db
from .priority import compute_priority


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _money(x) -> Decimal:
    if x is None:
        return Decimal("0.00")
    return Decimal(str(x)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """System login user (team member profile)."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    full_name = db.Column(db.String(150), nullable=False, default="")
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(40), nullable=True)

    role = db.Column(db.String(20), nullable=False, default=Role.VIEWER, index=True)
    # Department the user works in (mirrors role for department roles, free for admins)
    department = db.Column(db.String(20), nullable=True, index=True)
    # Production specialty (one of the production substages) for production staff
    production_stage = db.Column(db.String(30), nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def work_department(self):
        """Department used for visibility / notification audiences."""
        return (self.department or self.role or "").strip().lower() or None

    @property
    def display_name(self) -> str:
        return self.full_name or self.username

    def has_role(self, *roles: str) -> bool:
        return self.role in roles

    def __repr__(self):
        return f"<User {self.username} ({self.role})>"


# ---------------------------------------------------------------------
# Vendors
# ---------------------------------------------------------------------
class Vendor(db.Model):
    """External vendor used for outsourced work (Admin/Sales managed)."""

    __tablename__ = "vendors"

    id = db.Column(db.Integer, primary_key=True)

    vendor_name = db.Column(db.String(255), nullable=False, index=True)
    vendor_company = db.Column(db.String(255), nullable=True)
    contact_person = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(40), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        db.UniqueConstraint("vendor_name", "phone", name="uq_vendor_name_phone"),
    )

    def __repr__(self):
        return f"<Vendor {self.vendor_name}>"


# ---------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------
class Order(db.Model):
    """Customer order. Owns one or more OrderItems."""

    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)

    order_number = db.Column(db.String(64), nullable=False, unique=True, index=True)
    external_order_id = db.Column(db.String(64), nullable=True, index=True)
    source = db.Column(db.String(20), nullable=False, default=OrderSource.MANUAL)
    order_date = db.Column(db.Date, nullable=True)

    # Customer snapshot
    customer_name = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(40), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_address = db.Column(db.Text, nullable=True)
    customer_city = db.Column(db.String(120), nullable=True)
    customer_state = db.Column(db.String(120), nullable=True)
    customer_pincode = db.Column(db.String(20), nullable=True)

    delivery_date = db.Column(db.Date, nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    is_completed = db.Column(db.Boolean, default=False, nullable=False, index=True)
    is_archived = db.Column(db.Boolean, default=False, nullable=False, index=True)
    shipping_method = db.Column(db.String(20), nullable=True)

    # Financials (visible to admin + sales only)
    subtotal = db.Column(db.Numeric(12, 2), nullable=True)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=True)
    order_total = db.Column(db.Numeric(12, 2), nullable=True)
    payment_status = db.Column(db.String(30), nullable=True)
    currency = db.Column(db.String(10), nullable=True, default="INR")

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    # Sales owner: receives items sent back for customer approval
    assigned_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    created_by = db.relationship("User", foreign_keys=[created_by_id])
    assigned_user = db.relationship("User", foreign_keys=[assigned_user_id])

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    timeline = db.relationship(
        "TimelineEntry",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="TimelineEntry.created_at",
    )
    files = db.relationship(
        "OrderFile",
        back_populates="order",
        cascade="all, delete-orphan",
    )
    activity_logs = db.relationship(
        "OrderActivityLog",
        back_populates="order",
        cascade="all, delete-orphan",
    )
    notifications = db.relationship(
        "Notification",
        back_populates="order",
        cascade="all, delete-orphan",
    )

    def recalculate_totals(self, gst_rate: Decimal | None = None) -> None:
        """Manual orders: subtotal from line totals, optional GST on top."""
        subtotal = sum((_money(i.line_total) for i in self.items), Decimal("0.00"))
        tax = _money(subtotal * gst_rate) if gst_rate else Decimal("0.00")
        self.subtotal = subtotal
        self.tax_amount = tax
        self.order_total = _money(subtotal + tax)

    def refresh_completion(self) -> bool:
        """Mark the order completed once every item is dispatched."""
        if self.items and all(i.is_dispatched for i in self.items):
            self.is_completed = True
        return self.is_completed

    def __repr__(self):
        return f"<Order {self.order_number}>"


class OrderItem(db.Model):
    """One product line of an order; carries the workflow state."""

    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)

    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(120), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Numeric(12, 2), nullable=True)
    line_total = db.Column(db.Numeric(12, 2), nullable=True)
    specifications = db.Column(db.JSON, nullable=False, default=dict)
    need_design = db.Column(db.Boolean, default=True, nullable=False)

    # Workflow
    current_stage = db.Column(db.String(20), nullable=False, default=Stage.SALES, index=True)
    current_status = db.Column(db.String(40), nullable=False, default=ItemStatus.NEW_ORDER, index=True)
    assigned_department = db.Column(db.String(20), nullable=True, index=True)
    assigned_to_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    # Breadcrumb captured when the item is sent to sales for approval
    previous_department = db.Column(db.String(20), nullable=True)
    previous_assigned_to_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Production
    production_stage_sequence = db.Column(db.JSON, nullable=True)
    current_substage = db.Column(db.String(30), nullable=True)
    substage_status = db.Column(db.String(20), nullable=True)
    is_ready_for_production = db.Column(db.Boolean, default=False, nullable=False)

    delivery_date = db.Column(db.Date, nullable=True, index=True)
    # Last computed priority (snapshot used to detect escalation)
    priority = db.Column(db.String(10), nullable=False, default=Priority.LOW)

    is_dispatched = db.Column(db.Boolean, default=False, nullable=False)
    is_completed = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    order = db.relationship("Order", back_populates="items")
    assigned_to = db.relationship("User", foreign_keys=[assigned_to_id])
    previous_assigned_to = db.relationship("User", foreign_keys=[previous_assigned_to_id])

    outsource_job = db.relationship(
        "OutsourceJob",
        back_populates="item",
        uselist=False,
        cascade="all, delete-orphan",
    )
    dispatch_record = db.relationship(
        "DispatchRecord",
        back_populates="item",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def move_to(self, stage: str, status: str | None = None) -> None:
        """Set stage and the department derived from it in one place."""
        self.current_stage = stage
        self.assigned_department = department_for_stage(stage)
        if status is not None:
            self.current_status = status

    @property
    def department(self):
        """Owning department; legacy rows without assigned_department fall back to the stage."""
        return self.assigned_department or department_for_stage(self.current_stage)

    @property
    def computed_priority(self) -> str:
        return compute_priority(self.delivery_date)

    def refresh_priority(self):
        """Store the current priority; returns (previous, current)."""
        previous = self.priority
        self.priority = self.computed_priority
        return previous, self.priority

    def __repr__(self):
        return f"<OrderItem {self.id} {self.product_name} @ {self.current_stage}/{self.current_status}>"


# ---------------------------------------------------------------------
# Timeline (append-only)
# ---------------------------------------------------------------------
class TimelineEntry(db.Model):
    """One action taken on an order / item. Never updated; removed only with its order."""

    __tablename__ = "timeline"

    id = db.Column(db.Integer, primary_key=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("order_items.id", ondelete="SET NULL"), nullable=True, index=True)

    stage = db.Column(db.String(20), nullable=True)
    substage = db.Column(db.String(30), nullable=True)
    action = db.Column(db.String(40), nullable=False, index=True)

    performed_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    performed_by_name = db.Column(db.String(150), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    attachments = db.Column(db.JSON, nullable=True)
    is_public = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    order = db.relationship("Order", back_populates="timeline")


@event.listens_for(TimelineEntry, "before_update")
def _timeline_is_append_only(mapper, connection, target):
    raise ValueError("Timeline entries are append-only")


class OrderActivityLog(db.Model):
    """Department-level activity feed (best-effort, diagnostic)."""

    __tablename__ = "order_activity_logs"

    id = db.Column(db.Integer, primary_key=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("order_items.id", ondelete="SET NULL"), nullable=True)

    department = db.Column(db.String(20), nullable=True, index=True)
    action = db.Column(db.String(40), nullable=False)
    message = db.Column(db.Text, nullable=False)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by_name = db.Column(db.String(150), nullable=True)

    # "metadata" is reserved on declarative models
    details = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    order = db.relationship("Order", back_populates="activity_logs")


class Notification(db.Model):
    """In-app notification; one row per recipient."""

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=True, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("order_items.id", ondelete="SET NULL"), nullable=True)

    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(20), nullable=False, default=NotificationType.INFO)
    is_read = db.Column(db.Boolean, default=False, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    user = db.relationship("User", backref=db.backref("notifications", lazy=True, cascade="all, delete-orphan"))
    order = db.relationship("Order", back_populates="notifications")


# ---------------------------------------------------------------------
# Outsource / dispatch sub-records
# ---------------------------------------------------------------------
class OutsourceJob(db.Model):
    """Vendor + job tracking for an item sent out of house."""

    __tablename__ = "outsource_jobs"

    id = db.Column(db.Integer, primary_key=True)

    item_id = db.Column(
        db.Integer,
        db.ForeignKey("order_items.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True)

    # Vendor snapshot
    vendor_name = db.Column(db.String(255), nullable=False)
    vendor_company = db.Column(db.String(255), nullable=True)
    contact_person = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(40), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)

    # Job details
    work_type = db.Column(db.String(120), nullable=True)
    quantity_sent = db.Column(db.Integer, nullable=False)
    expected_ready_date = db.Column(db.Date, nullable=False)
    special_instructions = db.Column(db.Text, nullable=True)

    stage = db.Column(db.String(30), nullable=False, default=OutsourceStage.OUTSOURCED, index=True)

    # Vendor -> us
    courier_name = db.Column(db.String(120), nullable=True)
    tracking_number = db.Column(db.String(120), nullable=True)
    vendor_dispatch_date = db.Column(db.Date, nullable=True)
    receiver_name = db.Column(db.String(150), nullable=True)
    received_date = db.Column(db.Date, nullable=True)

    qc_result = db.Column(db.String(10), nullable=True)
    qc_notes = db.Column(db.Text, nullable=True)
    decision = db.Column(db.String(20), nullable=True)

    assigned_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_by_name = db.Column(db.String(150), nullable=True)
    assigned_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    item = db.relationship("OrderItem", back_populates="outsource_job")
    vendor = db.relationship("Vendor")
    follow_ups = db.relationship(
        "OutsourceFollowUp",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="OutsourceFollowUp.created_at",
    )


class OutsourceFollowUp(db.Model):
    """Append-only follow-up note on an outsource job."""

    __tablename__ = "outsource_follow_ups"

    id = db.Column(db.Integer, primary_key=True)

    job_id = db.Column(db.Integer, db.ForeignKey("outsource_jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    note = db.Column(db.Text, nullable=False)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by_name = db.Column(db.String(150), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    job = db.relationship("OutsourceJob", back_populates="follow_ups")


class DispatchRecord(db.Model):
    """Dispatch decision (pickup / courier) and, once shipped, courier + tracking."""

    __tablename__ = "dispatch_records"

    id = db.Column(db.Integer, primary_key=True)

    item_id = db.Column(
        db.Integer,
        db.ForeignKey("order_items.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    mode = db.Column(db.String(20), nullable=True)
    courier_company = db.Column(db.String(120), nullable=True)
    courier_address = db.Column(db.Text, nullable=True)
    courier_phone = db.Column(db.String(40), nullable=True)
    courier_notes = db.Column(db.Text, nullable=True)
    is_express = db.Column(db.Boolean, default=False, nullable=False)

    tracking_number = db.Column(db.String(120), nullable=True)
    dispatch_date = db.Column(db.Date, nullable=True)

    decided_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    dispatched_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    item = db.relationship("OrderItem", back_populates="dispatch_record")


# ---------------------------------------------------------------------
# Files / import cache / settings
# ---------------------------------------------------------------------
class OrderFile(db.Model):
    """Metadata of an uploaded artifact; the bytes live in the object store."""

    __tablename__ = "order_files"

    id = db.Column(db.Integer, primary_key=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("order_items.id", ondelete="SET NULL"), nullable=True, index=True)

    file_name = db.Column(db.String(255), nullable=False)
    storage_key = db.Column(db.String(512), nullable=False, unique=True)
    content_type = db.Column(db.String(120), nullable=True)
    file_size = db.Column(db.Integer, nullable=True)
    file_type = db.Column(db.String(30), nullable=True)

    uploaded_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    order = db.relationship("Order", back_populates="files")


class WooCommerceImport(db.Model):
    """One cached payload per imported WooCommerce order."""

    __tablename__ = "woocommerce_imports"

    id = db.Column(db.Integer, primary_key=True)

    woocommerce_order_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    order_number = db.Column(db.String(64), nullable=True)
    sanitized_payload = db.Column(db.JSON, nullable=False)

    imported_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    imported_at = db.Column(db.DateTime, default=datetime.utcnow)


class AppSetting(db.Model):
    """Key / JSON value settings (e.g. production substage catalogue)."""

    __tablename__ = "app_settings"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(80), nullable=False, unique=True, index=True)
    value = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ---------------------------------------------------------------------
# HR
# ---------------------------------------------------------------------
class HRProfile(db.Model):
    __tablename__ = "hr_profiles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    joining_date = db.Column(db.Date, nullable=True)
    designation = db.Column(db.String(120), nullable=True)
    employment_status = db.Column(db.String(30), nullable=False, default="active")
    base_salary = db.Column(db.Numeric(12, 2), nullable=True)

    user = db.relationship("User", backref=db.backref("hr_profile", uselist=False, cascade="all, delete-orphan"))


class LeaveType(db.Model):
    __tablename__ = "leave_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), nullable=False, unique=True)
    days_allowed_per_year = db.Column(db.Float, nullable=False, default=0)
    is_carry_forward = db.Column(db.Boolean, default=False, nullable=False)
    is_paid = db.Column(db.Boolean, default=True, nullable=False)
    color = db.Column(db.String(20), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)


class LeaveBalance(db.Model):
    """Year-scoped allowance for one user and leave type."""

    __tablename__ = "leave_balances"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    leave_type_id = db.Column(db.Integer, db.ForeignKey("leave_types.id", ondelete="CASCADE"), nullable=False)
    year = db.Column(db.Integer, nullable=False)

    balance = db.Column(db.Float, nullable=False, default=0)
    used = db.Column(db.Float, nullable=False, default=0)

    leave_type = db.relationship("LeaveType")

    __table_args__ = (
        db.UniqueConstraint("user_id", "leave_type_id", "year", name="uq_leave_balance_user_type_year"),
    )

    @property
    def remaining(self) -> float:
        return (self.balance or 0) - (self.used or 0)


class LeaveRequest(db.Model):
    __tablename__ = "leave_requests"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    leave_type_id = db.Column(db.Integer, db.ForeignKey("leave_types.id", ondelete="CASCADE"), nullable=False)

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    days_count = db.Column(db.Float, nullable=False)
    duration_type = db.Column(db.String(20), nullable=False, default="full_day")
    reason = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(20), nullable=False, default=LeaveStatus.PENDING, index=True)
    approved_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    decided_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    user = db.relationship("User", foreign_keys=[user_id])
    leave_type = db.relationship("LeaveType")


class Holiday(db.Model):
    __tablename__ = "hr_holidays"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    date = db.Column(db.Date, nullable=False, unique=True)
    day_of_week = db.Column(db.String(12), nullable=False)
    type = db.Column(db.String(20), nullable=False, default="mandatory")
    year = db.Column(db.Integer, nullable=False, index=True)


class PayrollRecord(db.Model):
    __tablename__ = "hr_payroll_records"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)

    base_salary = db.Column(db.Numeric(12, 2), nullable=False)
    bonus = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    deductions = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    net_salary = db.Column(db.Numeric(12, 2), nullable=False)

    status = db.Column(db.String(20), nullable=False, default="draft")
    paid_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship("User")

    __table_args__ = (
        db.UniqueConstraint("user_id", "month", "year", name="uq_payroll_user_month_year"),
    )

    def recalculate(self) -> None:
        self.net_salary = _money(_money(self.base_salary) + _money(self.bonus) - _money(self.deductions))


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Who changed which master-data / order record, with before/after snapshots."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    username_snapshot = db.Column(db.String(150), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    user = db.relationship("User", backref=db.backref("audit_entries", lazy=True))
