"""
Papers: submission, the multi-stage review workflow and the public catalog.

- Every paper has one stored file; resubmission replaces it
- Review decisions are append-only (`PaperReview`); the paper row carries the current status
- Meaningful actions are recorded to the append-only audit trail
"""
