from marshmallow import Schema, fields, validate

from ..models.enums import MATCH_SIDES, REJECTION_REASONS


class CreateMatchSchema(Schema):
    source_report_id = fields.Int(required=True, data_key="sourceReportId", validate=validate.Range(min=1))
    target_report_id = fields.Int(required=True, data_key="targetReportId", validate=validate.Range(min=1))
    score = fields.Float(load_default=0.0, validate=validate.Range(min=0, max=999.99))


class ConfirmMatchSchema(Schema):
    notes = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=2000))


class DismissMatchSchema(Schema):
    reason = fields.Str(required=True, validate=validate.OneOf(REJECTION_REASONS))
    details = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=2000))


class HandoverConfirmationSchema(Schema):
    # Defaults to the acting user's own side
    side = fields.Str(load_default=None, allow_none=True, validate=validate.OneOf(MATCH_SIDES))
    notes = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=2000))


class VerificationAnswerSchema(Schema):
    question_id = fields.Int(required=True, data_key="questionId")
    answer = fields.Str(required=True, validate=validate.Length(min=1, max=300))


class VerificationAttemptSchema(Schema):
    attempt_number = fields.Int(data_key="attemptNumber")
    question_id = fields.Int(data_key="questionId")
    answered_at = fields.DateTime(data_key="answeredAt")
    is_correct = fields.Bool(data_key="isCorrect")


class ChallengeQuestionSchema(Schema):
    id = fields.Int()
    question = fields.Str()
