from marshmallow import Schema, fields, validate


class RejectionRecordSchema(Schema):
    id = fields.Int(dump_only=True)
    match_id = fields.Int(data_key="matchId")
    user_id = fields.Int(data_key="userId")
    rejected_by = fields.Str(data_key="rejectedBy", allow_none=True)
    reason = fields.Str()
    details = fields.Str(allow_none=True)
    rejected_at = fields.DateTime(data_key="rejectedAt")


class UserRejectionStatsSchema(Schema):
    user_id = fields.Int(data_key="userId")
    total_rejections = fields.Int(data_key="totalRejections")
    reason_counts = fields.Dict(keys=fields.Str(), values=fields.Int(), data_key="rejectionReasons")
    last_rejection_at = fields.DateTime(data_key="lastRejectionAt", allow_none=True)
    is_flagged = fields.Bool(data_key="isFlagged")
    flagged_at = fields.DateTime(data_key="flaggedAt", allow_none=True)
    flag_reason = fields.Str(data_key="flagReason", allow_none=True)


class FlagUserSchema(Schema):
    reason = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=200))
