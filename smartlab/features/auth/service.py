# Authentication Feature - Service

from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from beanie import PydanticObjectId
from bson.errors import InvalidId

from smartlab.config import settings
from smartlab.core import audit
from smartlab.core.logging import logger
from smartlab.core.security import (
    create_access_token,
    generate_reset_token,
    hash_password_async,
    hash_token,
    truncate_to_millis,
    verify_password_async,
)
from smartlab.features.auth.models import (
    PRINCIPAL_CLASSES,
    Patient,
    Role,
    STAFF_ROLES,
    Staff,
    User,
)
from smartlab.features.auth.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    PrincipalFields,
    ResetPasswordRequest,
    UpdateProfileRequest,
    UserResponse,
)
from smartlab.shared.exceptions import (
    CredentialsException,
    DuplicateException,
    ForbiddenException,
    NotFoundException,
    ValidationFailedException,
)
from smartlab.shared.schemas import Pagination
from smartlab.shared.store import conditional_update


PATIENT_FIELDS = (
    "date_of_birth",
    "gender",
    "address",
    "emergency_contact",
    "medical_history",
    "allergies",
    "medications",
    "insurance_info",
)
STAFF_FIELDS = ("department", "employee_id")

# Tokens minted by a password change are dated just after the change stamp
NEXT_MILLISECOND = timedelta(milliseconds=1)

REQUIRED_BY_ROLE = {
    Role.PATIENT: ("date_of_birth", "gender"),
    Role.RECEPTIONIST: STAFF_FIELDS,
    Role.SUPERADMIN: STAFF_FIELDS,
}

# Self-service profile whitelist per role
PROFILE_FIELDS_BY_ROLE = {
    Role.PATIENT: {
        "first_name", "last_name", "phone", "address", "emergency_contact",
        "insurance_info", "medical_history", "allergies", "medications",
    },
    Role.RECEPTIONIST: {"first_name", "last_name", "phone", "department"},
    Role.SUPERADMIN: {"first_name", "last_name", "phone", "department"},
}


def _camel(field: str) -> str:
    head, *rest = field.split("_")
    return head + "".join(part.title() for part in rest)


class AuthService:
    """Service class for authentication and account management."""

    # ============== Principal construction ==============

    @staticmethod
    def _check_role_fields(data: PrincipalFields, role: Role) -> None:
        """Patient fields are required for patients only, staff fields for staff only."""
        provided = data.model_dump(exclude_none=True)
        errors = [
            {"field": _camel(field), "message": f"{_camel(field)} is required for role {role.value}", "value": None}
            for field in REQUIRED_BY_ROLE[role]
            if field not in provided
        ]
        foreign = STAFF_FIELDS if role == Role.PATIENT else PATIENT_FIELDS
        errors.extend(
            {"field": _camel(field), "message": f"{_camel(field)} is not allowed for role {role.value}", "value": None}
            for field in foreign
            if field in provided
        )
        if errors:
            raise ValidationFailedException("Validation failed", errors=errors)

    @staticmethod
    async def _ensure_unique(email: str, employee_id: Optional[str]) -> None:
        if await User.find_one(User.email == email.lower(), with_children=True):
            raise DuplicateException("User with this email already exists")
        if employee_id and await Staff.find_one(Staff.employee_id == employee_id, with_children=True):
            raise DuplicateException("Employee ID already exists")

    @staticmethod
    async def _build_principal(data: PrincipalFields, role: Role, is_active: bool = True) -> User:
        AuthService._check_role_fields(data, role)

        common = {
            "first_name": data.first_name,
            "last_name": data.last_name,
            "email": data.email,
            "phone": data.phone,
            "is_active": is_active,
            "password_hash": await hash_password_async(data.password),
        }
        fields = PATIENT_FIELDS if role == Role.PATIENT else STAFF_FIELDS
        specific = data.model_dump(include=set(fields), exclude_none=True)

        return PRINCIPAL_CLASSES[role](**common, **specific)

    # ============== Registration & login ==============

    @staticmethod
    async def register(data: PrincipalFields, role: Optional[Role], ip: Optional[str] = None) -> Tuple[User, str, datetime]:
        """
        Public self-registration.

        Creates a patient account. Staff roles are refused unless
        ALLOW_STAFF_SELF_REGISTRATION is switched on.
        """
        role = role or Role.PATIENT
        if role in STAFF_ROLES and not settings.ALLOW_STAFF_SELF_REGISTRATION:
            audit.log_security_event(
                "REGISTRATION_ATTEMPT_PRIVILEGED_ROLE",
                {"email": data.email, "role": role.value},
                ip=ip,
            )
            raise ForbiddenException("Only a super administrator can create staff accounts")

        try:
            await AuthService._ensure_unique(data.email, data.employee_id)
        except DuplicateException:
            audit.log_security_event(
                "REGISTRATION_ATTEMPT_DUPLICATE_EMAIL",
                {"email": data.email},
                ip=ip,
            )
            raise

        user = await AuthService._build_principal(data, role)
        verification_token = AuthService._issue_email_verification(user)
        await user.insert()

        logger.debug(f"E-mail verification token for {user.email}: {verification_token}")
        audit.log_user_registration(user, ip)

        token, expires_at = create_access_token(str(user.id))
        return user, token, expires_at

    @staticmethod
    async def login(data: LoginRequest, ip: Optional[str] = None) -> Tuple[User, str, datetime]:
        """Authenticate by e-mail and password and issue an access token."""
        user = await User.find_one(User.email == data.email.lower(), with_children=True)

        if user is None or not await verify_password_async(data.password, user.password_hash):
            audit.log_login_failure(data.email, "Invalid credentials", ip)
            raise CredentialsException("Incorrect email or password")

        if not user.is_active:
            audit.log_login_failure(data.email, "Account deactivated", ip)
            raise CredentialsException("Your account has been deactivated. Please contact support.")

        await user.set({User.last_login: datetime.utcnow()})
        audit.log_user_login(user, ip)

        token, expires_at = create_access_token(str(user.id))
        return user, token, expires_at

    # ============== Current user ==============

    @staticmethod
    async def get_user_by_id(user_id: str) -> Optional[User]:
        try:
            object_id = PydanticObjectId(user_id)
        except (InvalidId, TypeError):
            return None
        return await User.get(object_id, with_children=True)

    @staticmethod
    async def update_profile(user: User, data: UpdateProfileRequest, ip: Optional[str] = None) -> User:
        """Apply whitelisted profile changes for the caller's role."""
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        allowed = PROFILE_FIELDS_BY_ROLE[user.role]

        rejected = [field for field in changes if field not in allowed]
        if rejected:
            raise ValidationFailedException(
                "Some fields cannot be updated from your profile",
                errors=[
                    {"field": _camel(field), "message": "Field is not updatable for your role", "value": None}
                    for field in rejected
                ],
            )

        if not changes:
            return user

        updated = await conditional_update(
            type(user),
            user.id,
            update={"$set": changes},
            label="User",
        )
        audit.log_update(user, "user", user.id, changes.keys(), ip)
        return updated

    @staticmethod
    async def change_password(user: User, data: ChangePasswordRequest, ip: Optional[str] = None) -> Tuple[str, datetime]:
        """
        Change the caller's password and return a fresh token.

        Stamping ``password_changed_at`` invalidates every token issued before
        this instant. The new token is issued after the stamp.
        """
        if data.new_password != data.confirm_password:
            raise ValidationFailedException.for_field("confirmPassword", "Passwords do not match")

        if not await verify_password_async(data.current_password, user.password_hash):
            audit.log_security_event("PASSWORD_CHANGE_FAILED", {"reason": "Incorrect current password"}, user, ip)
            raise CredentialsException("Your current password is incorrect")

        new_hash = await hash_password_async(data.new_password)
        changed_at = truncate_to_millis(datetime.utcnow())

        # Precondition on the old hash: of two concurrent changes only one wins
        await conditional_update(
            type(user),
            user.id,
            {"password_hash": user.password_hash},
            update={"$set": {
                "password_hash": new_hash,
                "password_changed_at": changed_at,
            }},
            label="User",
            conflict_message="Password was changed by another request",
        )
        audit.log_password_change(user, ip)

        return create_access_token(str(user.id), issued_at=changed_at + NEXT_MILLISECOND)

    # ============== Password reset & e-mail verification ==============

    @staticmethod
    def _issue_email_verification(user: User) -> str:
        token = generate_reset_token()
        user.email_verification_token = hash_token(token)
        user.email_verification_expires = datetime.utcnow() + timedelta(
            hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS
        )
        return token

    @staticmethod
    async def forgot_password(email: str, ip: Optional[str] = None) -> None:
        """
        Create a password reset token.

        E-mail delivery is outside this service; the raw token is only written
        to the debug log. Unknown addresses are not revealed to the caller.
        """
        user = await User.find_one(User.email == email.lower(), User.is_active == True, with_children=True)
        if user is None:
            logger.info(f"Password reset requested for unknown email {email}")
            return

        token = generate_reset_token()
        await user.set({
            User.password_reset_token: hash_token(token),
            User.password_reset_expires: datetime.utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
        })

        logger.debug(f"Password reset token for {user.email}: {token}")
        audit.log_security_event("PASSWORD_RESET_REQUESTED", {"email": user.email}, user, ip)

    @staticmethod
    async def reset_password(token: str, data: ResetPasswordRequest, ip: Optional[str] = None) -> Tuple[User, str, datetime]:
        if data.password != data.confirm_password:
            raise ValidationFailedException.for_field("confirmPassword", "Passwords do not match")

        token_hash = hash_token(token)
        user = await User.find_one(
            User.password_reset_token == token_hash,
            User.password_reset_expires > datetime.utcnow(),
            with_children=True,
        )
        if user is None:
            raise ValidationFailedException.for_field("token", "Token is invalid or has expired")

        new_hash = await hash_password_async(data.password)
        changed_at = truncate_to_millis(datetime.utcnow())

        # The token is single-use: the precondition fails for a second redemption
        updated = await conditional_update(
            type(user),
            user.id,
            {"password_reset_token": token_hash},
            update={
                "$set": {
                    "password_hash": new_hash,
                    "password_changed_at": changed_at,
                    "password_reset_token": None,
                    "password_reset_expires": None,
                },
            },
            label="User",
            conflict_message="Token is invalid or has expired",
        )
        audit.log_password_change(updated, ip)

        access_token, expires_at = create_access_token(str(updated.id), issued_at=changed_at + NEXT_MILLISECOND)
        return updated, access_token, expires_at

    @staticmethod
    async def verify_email(token: str) -> User:
        token_hash = hash_token(token)
        user = await User.find_one(
            User.email_verification_token == token_hash,
            User.email_verification_expires > datetime.utcnow(),
            with_children=True,
        )
        if user is None:
            raise ValidationFailedException.for_field("token", "Verification token is invalid or has expired")

        await user.set({
            User.is_email_verified: True,
            User.email_verification_token: None,
            User.email_verification_expires: None,
        })
        logger.info(f"E-mail verified for {user.email}")
        return user

    # ============== Super-admin user management ==============

    @staticmethod
    async def create_user(data: PrincipalFields, role: Role, is_active: bool, actor: User, ip: Optional[str] = None) -> User:
        await AuthService._ensure_unique(data.email, data.employee_id)

        user = await AuthService._build_principal(data, role, is_active=is_active)
        await user.insert()

        audit.log_user_registration(user, ip, registered_by=actor)
        return user

    @staticmethod
    async def list_users(
        pagination: Pagination,
        role: Optional[Role] = None,
        is_active: Optional[bool] = None,
    ) -> Tuple[List[User], int]:
        query = User.find(with_children=True)
        if role is not None:
            query = query.find(User.role == role)
        if is_active is not None:
            query = query.find(User.is_active == is_active)

        total = await query.count()
        users = await query.sort(-User.created_at).skip(pagination.skip).limit(pagination.limit).to_list()
        return users, total

    @staticmethod
    async def get_user_or_404(user_id: PydanticObjectId) -> User:
        user = await User.get(user_id, with_children=True)
        if user is None:
            raise NotFoundException("User not found")
        return user

    @staticmethod
    async def set_user_status(user_id: PydanticObjectId, is_active: bool, actor: User, ip: Optional[str] = None) -> User:
        if user_id == actor.id and not is_active:
            raise ForbiddenException("You cannot deactivate your own account")

        user = await AuthService.get_user_or_404(user_id)
        updated = await conditional_update(
            type(user),
            user_id,
            update={"$set": {"is_active": is_active}},
            label="User",
        )
        audit.log_update(actor, "user", user_id, ["is_active"], ip)
        return updated

    @staticmethod
    async def delete_user(user_id: PydanticObjectId, actor: User, ip: Optional[str] = None) -> None:
        if user_id == actor.id:
            raise ForbiddenException("You cannot delete your own account")

        user = await AuthService.get_user_or_404(user_id)
        await user.delete()
        audit.log_delete(actor, "user", user_id, ip)

    # ============== Response shaping ==============

    @staticmethod
    def user_to_response(user: User) -> UserResponse:
        """Convert a principal of any variant to its public view."""
        data = {
            "id": str(user.id),
            "first_name": user.first_name,
            "last_name": user.last_name,
            "full_name": user.full_name,
            "email": user.email,
            "phone": user.phone,
            "role": user.role,
            "is_active": user.is_active,
            "is_email_verified": user.is_email_verified,
            "last_login": user.last_login,
            "created_at": user.created_at,
            "updated_at": user.updated_at,
        }

        if isinstance(user, Patient):
            data.update(
                date_of_birth=user.date_of_birth,
                age=user.age,
                gender=user.gender,
                address=user.address.model_dump() if user.address else None,
                emergency_contact=user.emergency_contact.model_dump() if user.emergency_contact else None,
                medical_history=user.medical_history,
                allergies=user.allergies,
                medications=user.medications,
                insurance_info=user.insurance_info.model_dump() if user.insurance_info else None,
            )
        elif isinstance(user, Staff):
            data.update(department=user.department, employee_id=user.employee_id)

        return UserResponse(**data)
