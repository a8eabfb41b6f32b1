"""Core data models for identity, opportunities, moderation, and the forum."""
import uuid
from datetime import datetime

from flask_login import UserMixin
from sqlalchemy.ext.hybrid import hybrid_property
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db


def generate_uuid() -> str:
	return str(uuid.uuid4())


def _iso(value: datetime | None) -> str | None:
	return value.isoformat() if value else None


def _in_clause(column: str, values: tuple[str, ...]) -> str:
	quoted = ",".join(f"'{value}'" for value in values)
	return f"{column} IN ({quoted})"


ROLE_VALUES: tuple[str, ...] = (
	"user",
	"stakeholder",
	"admin",
)

VERIFICATION_STATUSES: tuple[str, ...] = (
	"pending",
	"verified",
	"rejected",
)

EDUCATION_LEVELS: tuple[str, ...] = (
	"high-school",
	"matric",
	"undergraduate",
	"postgraduate",
	"tvet",
	"other",
)

EMPLOYMENT_STATUSES: tuple[str, ...] = (
	"unemployed",
	"employed",
	"student",
	"self-employed",
)

COMPANY_SIZES: tuple[str, ...] = (
	"1-10",
	"11-50",
	"51-200",
	"201-500",
	"501+",
)

OPPORTUNITY_CATEGORIES: tuple[str, ...] = (
	"bursary",
	"career",
	"learnership",
	"business",
	"event",
	"success-story",
)

OPPORTUNITY_STATUSES: tuple[str, ...] = (
	"pending",
	"approved",
	"rejected",
)

OPPORTUNITY_SOURCES: tuple[str, ...] = (
	"portal",
	"whatsapp",
)

APPLICATION_STATUSES: tuple[str, ...] = (
	"pending",
	"under-review",
	"approved",
	"rejected",
	"withdrawn",
)

REVIEW_STATUSES: tuple[str, ...] = (
	"under-review",
	"approved",
	"rejected",
)

REPORT_TYPES: tuple[str, ...] = (
	"opportunity",
	"user",
	"comment",
	"other",
)

REPORT_REASONS: tuple[str, ...] = (
	"spam",
	"inappropriate",
	"misinformation",
	"scam",
	"harassment",
	"other",
)

REPORT_STATUSES: tuple[str, ...] = (
	"pending",
	"under-review",
	"resolved",
	"dismissed",
)

SUBMISSION_MESSAGE_TYPES: tuple[str, ...] = (
	"text",
	"image",
	"video",
	"document",
	"audio",
	"location",
	"contacts",
	"unknown",
)

SUBMISSION_CATEGORIES: tuple[str, ...] = (
	"bursary",
	"career",
	"learnership",
	"business",
	"general",
	"event",
	"success-story",
)

SUBMISSION_STATUSES: tuple[str, ...] = (
	"pending",
	"approved",
	"rejected",
	"published",
)

FORUM_CATEGORIES: tuple[str, ...] = (
	"bursaries",
	"careers",
	"learnerships",
	"business",
	"general",
	"success-stories",
	"advice",
)


DEFAULT_PREFERENCES: dict = {
	"email_notifications": True,
	"sms_notifications": False,
	"job_alerts": True,
	"bursary_alerts": True,
	"preferred_categories": [],
}


saved_opportunities = db.Table(
	"saved_opportunities",
	db.Column("user_id", db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
	db.Column("opportunity_id", db.String(36), db.ForeignKey("opportunities.id", ondelete="CASCADE"), primary_key=True),
	db.Column("saved_at", db.DateTime, default=datetime.utcnow, nullable=False),
)

forum_post_likes = db.Table(
	"forum_post_likes",
	db.Column("user_id", db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
	db.Column("post_id", db.String(36), db.ForeignKey("forum_posts.id", ondelete="CASCADE"), primary_key=True),
)

forum_comment_likes = db.Table(
	"forum_comment_likes",
	db.Column("user_id", db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
	db.Column("comment_id", db.String(36), db.ForeignKey("forum_comments.id", ondelete="CASCADE"), primary_key=True),
)


class User(UserMixin, db.Model):
	__tablename__ = "users"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	name = db.Column(db.String(150), nullable=False)
	email = db.Column(db.String(255), unique=True, nullable=False, index=True)
	password_hash = db.Column(db.String(255), nullable=False)
	role = db.Column(db.String(20), nullable=False, default="user", index=True)

	bio = db.Column(db.Text, nullable=True)
	location = db.Column(db.String(150), nullable=True)
	phone = db.Column(db.String(50), nullable=True)
	education_level = db.Column(db.String(30), nullable=True)
	employment_status = db.Column(db.String(30), nullable=True)
	skills = db.Column(db.JSON, nullable=False, default=list)
	interests = db.Column(db.JSON, nullable=False, default=list)

	company_name = db.Column(db.String(255), nullable=True)
	company_description = db.Column(db.Text, nullable=True)
	company_website = db.Column(db.String(1024), nullable=True)
	company_industry = db.Column(db.String(150), nullable=True)
	company_size = db.Column(db.String(20), nullable=True)
	verification_status = db.Column(db.String(20), nullable=False, default="pending")

	preferences = db.Column(db.JSON, nullable=False, default=lambda: dict(DEFAULT_PREFERENCES))

	is_active = db.Column(db.Boolean, default=True, nullable=False)
	is_suspended = db.Column(db.Boolean, default=False, nullable=False)
	suspension_reason = db.Column(db.String(500), nullable=True)
	last_login_at = db.Column(db.DateTime, nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	__table_args__ = (
		db.CheckConstraint(_in_clause("role", ROLE_VALUES), name="ck_user_role_valid"),
		db.CheckConstraint(_in_clause("verification_status", VERIFICATION_STATUSES), name="ck_user_verification_valid"),
	)

	audit_logs = db.relationship("AuditLog", back_populates="user", lazy="dynamic", passive_deletes=True)
	reset_tokens = db.relationship("PasswordResetToken", back_populates="user", cascade="all, delete-orphan", lazy="dynamic")
	opportunities = db.relationship(
		"Opportunity",
		back_populates="creator",
		foreign_keys="Opportunity.created_by_id",
		lazy="dynamic",
	)
	applications = db.relationship(
		"Application",
		back_populates="user",
		foreign_keys="Application.user_id",
		cascade="all, delete-orphan",
		lazy="dynamic",
	)
	reports = db.relationship(
		"Report",
		back_populates="reporter",
		foreign_keys="Report.reported_by_id",
		cascade="all, delete-orphan",
		lazy="dynamic",
	)
	saved = db.relationship("Opportunity", secondary=saved_opportunities, lazy="dynamic")

	def set_password(self, password: str) -> None:
		self.password_hash = generate_password_hash(password, method="pbkdf2:sha256", salt_length=16)

	def check_password(self, password: str) -> bool:
		return check_password_hash(self.password_hash, password)

	@property
	def is_admin(self) -> bool:
		return self.role == "admin"

	@property
	def is_authenticated(self) -> bool:
		# A valid token authenticates; account state is gated by auth_required.
		return True

	def public_payload(self) -> dict:
		return {
			"id": self.id,
			"name": self.name,
			"email": self.email,
			"role": self.role,
		}

	def profile_payload(self) -> dict:
		payload = self.public_payload()
		payload.update(
			{
				"bio": self.bio,
				"location": self.location,
				"phone": self.phone,
				"education_level": self.education_level,
				"employment_status": self.employment_status,
				"skills": list(self.skills or []),
				"interests": list(self.interests or []),
				"preferences": dict(self.preferences or {}),
				"is_active": self.is_active,
				"is_suspended": self.is_suspended,
				"suspension_reason": self.suspension_reason,
				"last_login_at": _iso(self.last_login_at),
				"created_at": _iso(self.created_at),
			}
		)
		if self.role in ("stakeholder", "admin") or self.company_name:
			payload.update(
				{
					"company_name": self.company_name,
					"company_description": self.company_description,
					"company_website": self.company_website,
					"company_industry": self.company_industry,
					"company_size": self.company_size,
					"verification_status": self.verification_status,
				}
			)
		return payload


class AuditLog(db.Model):
	__tablename__ = "audit_logs"

	id = db.Column(db.Integer, primary_key=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
	action_type = db.Column(db.String(50), nullable=False)
	ip_address = db.Column(db.String(64), nullable=True)
	user_agent = db.Column(db.String(255), nullable=True)
	context_entity = db.Column(db.String(120), nullable=True)
	timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	user = db.relationship("User", back_populates="audit_logs")


class PasswordResetToken(db.Model):
	__tablename__ = "password_reset_tokens"

	id = db.Column(db.Integer, primary_key=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
	token_hash = db.Column(db.String(128), nullable=False, unique=True, index=True)
	expires_at = db.Column(db.DateTime, nullable=False)
	consumed_at = db.Column(db.DateTime, nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

	user = db.relationship("User", back_populates="reset_tokens")

	@property
	def is_expired(self) -> bool:
		return datetime.utcnow() > self.expires_at

	@property
	def is_used(self) -> bool:
		return self.consumed_at is not None


class Opportunity(db.Model):
	__tablename__ = "opportunities"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	title = db.Column(db.String(255), nullable=False)
	description = db.Column(db.Text, nullable=False)
	category = db.Column(db.String(30), nullable=False, index=True)
	subcategory = db.Column(db.String(120), nullable=True, index=True)

	organization = db.Column(db.String(255), nullable=True)
	contact_email = db.Column(db.String(255), nullable=True)
	contact_phone = db.Column(db.String(50), nullable=True)
	website = db.Column(db.String(1024), nullable=True)
	apply_url = db.Column(db.String(1024), nullable=True)

	allow_internal_application = db.Column(db.Boolean, nullable=False, default=False)
	application_questions = db.Column(db.JSON, nullable=False, default=list)
	required_documents = db.Column(db.JSON, nullable=False, default=list)

	location = db.Column(db.String(255), nullable=True, index=True)
	eligibility = db.Column(db.Text, nullable=True)
	requirements = db.Column(db.JSON, nullable=False, default=list)
	deadline = db.Column(db.DateTime, nullable=True, index=True)
	closing_date = db.Column(db.DateTime, nullable=True, index=True)
	start_date = db.Column(db.DateTime, nullable=True)
	end_date = db.Column(db.DateTime, nullable=True)

	amount = db.Column(db.String(120), nullable=True)
	funding_type = db.Column(db.String(120), nullable=True)
	employment_type = db.Column(db.String(120), nullable=True)
	salary = db.Column(db.String(120), nullable=True)
	experience = db.Column(db.String(255), nullable=True)

	image_url = db.Column(db.String(1024), nullable=True)
	attachments = db.Column(db.JSON, nullable=False, default=list)
	tags = db.Column(db.JSON, nullable=False, default=list)
	keywords = db.Column(db.JSON, nullable=False, default=list)

	status = db.Column(db.String(20), nullable=False, default="pending", index=True)
	rejection_reason = db.Column(db.String(500), nullable=True)
	source = db.Column(db.String(20), nullable=False, default="portal")
	views = db.Column(db.Integer, nullable=False, default=0)
	application_count = db.Column(db.Integer, nullable=False, default=0)
	featured = db.Column(db.Boolean, nullable=False, default=False, index=True)
	urgent = db.Column(db.Boolean, nullable=False, default=False)

	created_by_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
	updated_by_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	__table_args__ = (
		db.CheckConstraint(_in_clause("category", OPPORTUNITY_CATEGORIES), name="ck_opportunity_category_valid"),
		db.CheckConstraint(_in_clause("status", OPPORTUNITY_STATUSES), name="ck_opportunity_status_valid"),
		db.CheckConstraint(_in_clause("source", OPPORTUNITY_SOURCES), name="ck_opportunity_source_valid"),
		db.Index("ix_opportunity_status_category", "status", "category"),
	)

	creator = db.relationship("User", back_populates="opportunities", foreign_keys=[created_by_id])
	updater = db.relationship("User", foreign_keys=[updated_by_id])
	applications = db.relationship("Application", back_populates="opportunity", lazy="dynamic")

	@staticmethod
	def public_query():
		"""Approved listings whose closing date has not passed (or has none)."""
		return Opportunity.query.filter(
			Opportunity.status == "approved",
			db.or_(Opportunity.closing_date.is_(None), Opportunity.closing_date >= datetime.utcnow()),
		)

	@property
	def is_publicly_visible(self) -> bool:
		if self.status != "approved":
			return False
		return self.closing_date is None or self.closing_date >= datetime.utcnow()

	def public_payload(self) -> dict:
		return {
			"id": self.id,
			"title": self.title,
			"description": self.description,
			"category": self.category,
			"subcategory": self.subcategory,
			"organization": self.organization,
			"contact_email": self.contact_email,
			"contact_phone": self.contact_phone,
			"website": self.website,
			"apply_url": self.apply_url,
			"allow_internal_application": self.allow_internal_application,
			"application_questions": list(self.application_questions or []),
			"required_documents": list(self.required_documents or []),
			"location": self.location,
			"eligibility": self.eligibility,
			"requirements": list(self.requirements or []),
			"deadline": _iso(self.deadline),
			"closing_date": _iso(self.closing_date),
			"start_date": _iso(self.start_date),
			"end_date": _iso(self.end_date),
			"amount": self.amount,
			"funding_type": self.funding_type,
			"employment_type": self.employment_type,
			"salary": self.salary,
			"experience": self.experience,
			"image_url": self.image_url,
			"attachments": list(self.attachments or []),
			"tags": list(self.tags or []),
			"keywords": list(self.keywords or []),
			"status": self.status,
			"rejection_reason": self.rejection_reason,
			"source": self.source,
			"views": self.views,
			"application_count": self.application_count,
			"featured": self.featured,
			"urgent": self.urgent,
			"created_by": self.creator.public_payload() if self.creator else None,
			"updated_by": self.updated_by_id,
			"created_at": _iso(self.created_at),
			"updated_at": _iso(self.updated_at),
		}


class Application(db.Model):
	__tablename__ = "applications"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
	# Nullable: deleting an opportunity keeps its applications for history.
	opportunity_id = db.Column(db.String(36), db.ForeignKey("opportunities.id", ondelete="SET NULL"), nullable=True, index=True)
	status = db.Column(db.String(20), nullable=False, default="pending", index=True)
	cover_letter = db.Column(db.Text, nullable=True)
	resume = db.Column(db.String(1024), nullable=True)
	documents = db.Column(db.JSON, nullable=False, default=list)
	answers = db.Column(db.JSON, nullable=False, default=list)
	notes = db.Column(db.Text, nullable=True)
	reviewed_by_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
	reviewed_at = db.Column(db.DateTime, nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	__table_args__ = (
		db.CheckConstraint(_in_clause("status", APPLICATION_STATUSES), name="ck_application_status_valid"),
		# At most one live application per (user, opportunity); withdrawn rows are history.
		db.Index(
			"uq_application_live_pair",
			"user_id",
			"opportunity_id",
			unique=True,
			sqlite_where=db.text("status != 'withdrawn'"),
			postgresql_where=db.text("status != 'withdrawn'"),
		),
	)

	user = db.relationship("User", back_populates="applications", foreign_keys=[user_id])
	reviewer = db.relationship("User", foreign_keys=[reviewed_by_id])
	opportunity = db.relationship("Opportunity", back_populates="applications")

	def public_payload(self, include_applicant: bool = False) -> dict:
		payload = {
			"id": self.id,
			"status": self.status,
			"opportunity_id": self.opportunity_id,
			"opportunity": None,
			"cover_letter": self.cover_letter,
			"resume": self.resume,
			"documents": list(self.documents or []),
			"answers": list(self.answers or []),
			"notes": self.notes,
			"reviewed_by": self.reviewer.public_payload() if self.reviewer else None,
			"reviewed_at": _iso(self.reviewed_at),
			"created_at": _iso(self.created_at),
			"updated_at": _iso(self.updated_at),
		}
		if self.opportunity:
			payload["opportunity"] = {
				"id": self.opportunity.id,
				"title": self.opportunity.title,
				"organization": self.opportunity.organization,
				"category": self.opportunity.category,
				"closing_date": _iso(self.opportunity.closing_date),
			}
		if include_applicant and self.user:
			payload["applicant"] = {
				**self.user.public_payload(),
				"phone": self.user.phone,
				"location": self.user.location,
				"education_level": self.user.education_level,
				"skills": list(self.user.skills or []),
			}
		return payload


class Report(db.Model):
	__tablename__ = "reports"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	reported_by_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
	report_type = db.Column(db.String(20), nullable=False)
	reported_item_id = db.Column(db.String(64), nullable=False)
	reason = db.Column(db.String(30), nullable=False)
	description = db.Column(db.Text, nullable=True)
	status = db.Column(db.String(20), nullable=False, default="pending", index=True)
	resolved_by_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
	resolved_at = db.Column(db.DateTime, nullable=True)
	resolution = db.Column(db.Text, nullable=True)
	action_taken = db.Column(db.String(255), nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	__table_args__ = (
		db.CheckConstraint(_in_clause("report_type", REPORT_TYPES), name="ck_report_type_valid"),
		db.CheckConstraint(_in_clause("reason", REPORT_REASONS), name="ck_report_reason_valid"),
		db.CheckConstraint(_in_clause("status", REPORT_STATUSES), name="ck_report_status_valid"),
	)

	reporter = db.relationship("User", back_populates="reports", foreign_keys=[reported_by_id])
	resolver = db.relationship("User", foreign_keys=[resolved_by_id])

	@property
	def is_terminal(self) -> bool:
		return self.status in ("resolved", "dismissed")

	def public_payload(self) -> dict:
		return {
			"id": self.id,
			"report_type": self.report_type,
			"reported_item_id": self.reported_item_id,
			"reason": self.reason,
			"description": self.description,
			"status": self.status,
			"reported_by": self.reporter.public_payload() if self.reporter else None,
			"resolved_by": self.resolver.public_payload() if self.resolver else None,
			"resolved_at": _iso(self.resolved_at),
			"resolution": self.resolution,
			"action_taken": self.action_taken,
			"created_at": _iso(self.created_at),
		}


class WhatsAppSubmission(db.Model):
	__tablename__ = "whatsapp_submissions"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	message_id = db.Column(db.String(255), nullable=False, unique=True, index=True)
	sender_phone = db.Column(db.String(50), nullable=False)
	sender_name = db.Column(db.String(255), nullable=False, default="Unknown")
	message_type = db.Column(db.String(20), nullable=False, default="text")
	message_content = db.Column(db.Text, nullable=True)
	media_url = db.Column(db.String(1024), nullable=True)
	category = db.Column(db.String(30), nullable=False, default="general", index=True)
	status = db.Column(db.String(20), nullable=False, default="pending", index=True)
	message_timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	parsed_data = db.Column(db.JSON, nullable=False, default=dict)
	message_metadata = db.Column(db.JSON, nullable=False, default=dict)
	opportunity_id = db.Column(db.String(36), db.ForeignKey("opportunities.id", ondelete="SET NULL"), nullable=True)
	reviewed_by_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
	reviewed_at = db.Column(db.DateTime, nullable=True)
	review_notes = db.Column(db.Text, nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

	__table_args__ = (
		db.CheckConstraint(_in_clause("message_type", SUBMISSION_MESSAGE_TYPES), name="ck_submission_type_valid"),
		db.CheckConstraint(_in_clause("category", SUBMISSION_CATEGORIES), name="ck_submission_category_valid"),
		db.CheckConstraint(_in_clause("status", SUBMISSION_STATUSES), name="ck_submission_status_valid"),
		db.Index("ix_submission_status_received", "status", "message_timestamp"),
	)

	opportunity = db.relationship("Opportunity")
	reviewer = db.relationship("User", foreign_keys=[reviewed_by_id])

	def public_payload(self) -> dict:
		return {
			"id": self.id,
			"message_id": self.message_id,
			"sender_phone": self.sender_phone,
			"sender_name": self.sender_name,
			"message_type": self.message_type,
			"message_content": self.message_content,
			"media_url": self.media_url,
			"category": self.category,
			"status": self.status,
			"timestamp": _iso(self.message_timestamp),
			"parsed_data": dict(self.parsed_data or {}),
			"metadata": dict(self.message_metadata or {}),
			"opportunity_id": self.opportunity_id,
			"reviewed_by": self.reviewer.public_payload() if self.reviewer else None,
			"reviewed_at": _iso(self.reviewed_at),
			"review_notes": self.review_notes,
			"created_at": _iso(self.created_at),
		}


class ForumPost(db.Model):
	__tablename__ = "forum_posts"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	author_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
	title = db.Column(db.String(200), nullable=False)
	content = db.Column(db.Text, nullable=False)
	category = db.Column(db.String(30), nullable=False, default="general", index=True)
	tags = db.Column(db.JSON, nullable=False, default=list)
	views = db.Column(db.Integer, nullable=False, default=0)
	is_pinned = db.Column(db.Boolean, nullable=False, default=False)
	is_locked = db.Column(db.Boolean, nullable=False, default=False)
	last_activity = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	__table_args__ = (
		db.CheckConstraint(_in_clause("category", FORUM_CATEGORIES), name="ck_forum_post_category_valid"),
	)

	author = db.relationship("User")
	comments = db.relationship("ForumComment", back_populates="post", lazy="dynamic", passive_deletes=True)
	liked_by = db.relationship("User", secondary=forum_post_likes, lazy="dynamic", passive_deletes=True)

	def public_payload(self, viewer=None, comment_count: int | None = None) -> dict:
		payload = {
			"id": self.id,
			"title": self.title,
			"content": self.content,
			"category": self.category,
			"tags": list(self.tags or []),
			"author": self.author.public_payload() if self.author else None,
			"likes": self.liked_by.count(),
			"liked": bool(viewer and self.liked_by.filter(User.id == viewer.id).count()),
			"views": self.views,
			"is_pinned": self.is_pinned,
			"is_locked": self.is_locked,
			"last_activity": _iso(self.last_activity),
			"created_at": _iso(self.created_at),
			"updated_at": _iso(self.updated_at),
		}
		if comment_count is not None:
			payload["comment_count"] = comment_count
		return payload


class ForumComment(db.Model):
	"""Forum comment; a deleted comment is a tombstone whose content is gone."""

	__tablename__ = "forum_comments"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	post_id = db.Column(db.String(36), db.ForeignKey("forum_posts.id", ondelete="CASCADE"), nullable=False)
	author_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
	parent_comment_id = db.Column(db.String(36), db.ForeignKey("forum_comments.id", ondelete="SET NULL"), nullable=True, index=True)
	content = db.Column(db.Text, nullable=True)
	deleted_at = db.Column(db.DateTime, nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	__table_args__ = (
		db.Index("ix_forum_comment_post_created", "post_id", "created_at"),
		db.CheckConstraint(
			"(content IS NULL) = (deleted_at IS NOT NULL)",
			name="ck_forum_comment_tombstone",
		),
	)

	post = db.relationship("ForumPost", back_populates="comments")
	author = db.relationship("User")
	liked_by = db.relationship("User", secondary=forum_comment_likes, lazy="dynamic", passive_deletes=True)

	@hybrid_property
	def is_deleted(self) -> bool:
		return self.content is None

	@is_deleted.expression
	def is_deleted(cls):
		return cls.content.is_(None)

	def tombstone(self) -> None:
		self.content = None
		self.deleted_at = datetime.utcnow()

	def public_payload(self, viewer=None, reply_count: int | None = None) -> dict:
		payload = {
			"id": self.id,
			"post_id": self.post_id,
			"parent_comment_id": self.parent_comment_id,
			"author": self.author.public_payload() if self.author else None,
			"content": self.content,
			"is_deleted": self.is_deleted,
			"likes": self.liked_by.count(),
			"liked": bool(viewer and self.liked_by.filter(User.id == viewer.id).count()),
			"created_at": _iso(self.created_at),
			"updated_at": _iso(self.updated_at),
		}
		if reply_count is not None:
			payload["reply_count"] = reply_count
		return payload
