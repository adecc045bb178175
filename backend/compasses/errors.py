from __future__ import annotations


class AppError(Exception):
	"""Base for errors rendered to clients as ``{"error": message}``."""

	status_code: int = 500

	def __init__(self, message: str) -> None:
		super().__init__(message)
		self.message = message


class ValidationError(AppError):
	status_code = 400


class ConflictError(AppError):
	# Duplicate registrations are reported as a plain bad request
	status_code = 400


class AuthenticationError(AppError):
	status_code = 401


class AuthorizationError(AppError):
	status_code = 403


class NotFoundError(AppError):
	status_code = 404


class UpstreamGenerationError(AppError):
	status_code = 502


class EvaluationFailedError(AppError):
	status_code = 502


class VoiceGenerationError(AppError):
	status_code = 502
