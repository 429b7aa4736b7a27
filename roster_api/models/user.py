from datetime import datetime
from roster_api.extensions import db
from werkzeug.security import generate_password_hash, check_password_hash

ROLE_CODES = ("admin", "staff", "client", "employee")


class User(db.Model):
    __tablename__ = "users"

    id           = db.Column(db.Integer, primary_key=True)
    email        = db.Column(db.String(255), unique=True, index=True, nullable=False)
    password_hash= db.Column(db.String(255), nullable=False)
    full_name    = db.Column(db.String(255), nullable=False)
    roles_csv    = db.Column(db.String(120), nullable=False, default="employee")  # "admin,staff"
    status       = db.Column(db.String(20), default="active")
    created_at   = db.Column(db.DateTime, default=datetime.utcnow)
    deleted_at   = db.Column(db.DateTime)

    # --- helpers ---
    def set_password(self, raw: str):
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        return check_password_hash(self.password_hash, raw)

    def role_codes(self):
        return [r for r in (self.roles_csv or "").split(",") if r]

    def set_roles(self, *codes: str):
        unknown = [c for c in codes if c not in ROLE_CODES]
        if unknown:
            raise ValueError(f"unknown role(s): {', '.join(unknown)}")
        self.roles_csv = ",".join(codes)

    def has_role(self, *codes: str) -> bool:
        mine = set(self.role_codes())
        return "admin" in mine or any(c in mine for c in codes)

    def to_dict(self):
        return {"id": self.id, "email": self.email, "full_name": self.full_name, "roles": self.role_codes()}
