from .db import (
    Transition,
    get_engine,
    get_session,
    create_all,
    dispose_engine,
    mark_update_processed,
    prune_processed_updates,
    create_task,
    get_task,
    list_tasks,
    list_active_tasks,
    list_boxed_tasks,
    list_recent_completed,
    count_boxed_tasks,
    list_today_active,
    list_chats_with_tasks,
    list_due_reminder_batch,
    claim_reminder,
    attach_message_id,
    advance_next_reminder,
    advance_stale_claim,
    count_sent_reminders,
    next_occurrence,
    mark_done,
    mark_canceled,
    mark_boxed,
    mark_active,
    cleanup_completed_overflow,
)  # noqa: F401
