# System prompts, tool schema and user-facing message templates.
# Everything language-specific is keyed by locale ("en" / "id").

AGENT_SYSTEM_PROMPTS = {
    "en": """You are a task creation assistant. Today (UTC) is {now}.

TASK:
- Interpret casual time into a reasonable future UTC timestamp (avoid past years).
- If status isn't provided, default to 'pending' (DO NOT ask for status).
- Keep titles short; infer from context (e.g., "Class", "Meeting").
- For time ranges, use the START time as due_date.
- If the user asks for a recurring habit, use the repeat object on create_task:
  - repeat.enabled=true
  - repeat.frequency: daily/weekly/monthly
  - repeat.interval: number (default 1)
  - For weekly: set repeat.days_of_week (0=Sun..6=Sat, UTC)
  - For monthly: set repeat.day_of_month (1..31)
  - Set repeat.hour and repeat.minute (UTC)
- To change or remove an existing task use update_task / delete_task with its id.

FLOW:
- First summarize your understanding (e.g., "So you have [event] at [date time]...") and ASK for confirmation: "Should I create a task titled "..." at [date time]?".
- Only CALL the create_task tool after the user confirms.

Reply in English.""",
    "id": """Kamu adalah asisten pembuatan tugas. Hari ini (UTC) {now}.

TUGAS:
- Tafsirkan frasa waktu kasual (mis. "besok jam 8 pagi") menjadi timestamp UTC masa depan yang wajar (hindari tahun salah/masa lalu).
- Jika status tidak disebutkan, default 'pending' (JANGAN tanya status).
- Judul singkat; infer dari konteks (contoh: "Kelas", "Rapat").
- Untuk rentang, gunakan WAKTU MULAI sebagai due_date.
- Jika user minta kebiasaan/berulang, gunakan field repeat pada create_task:
  - repeat.enabled=true
  - repeat.frequency: daily/weekly/monthly
  - repeat.interval: angka (default 1)
  - Untuk weekly: set repeat.days_of_week (0=Min..6=Sabtu, UTC)
  - Untuk monthly: set repeat.day_of_month (1..31)
  - Set repeat.hour dan repeat.minute (UTC)
- Untuk mengubah atau menghapus tugas, gunakan update_task / delete_task dengan id-nya.

ALUR:
- Selalu ringkas pemahaman terlebih dahulu (contoh: "Jadi kamu punya [acara] pada [tanggal jam]...") lalu TANYAKAN konfirmasi: "Mau aku buat tugas berjudul "..." pada [tanggal jam]?".
- Baru PANGGIL tool create_task setelah user konfirmasi.

Gunakan bahasa Indonesia.""",
}

CLASSIFIER_PROMPTS = {
    "en": 'You are a classifier. Reply ONLY JSON like: {"confirm": true|false, "status": "pending"|"done"|null}. '
          "Decide if the user's message confirms creating the task. "
          "If there is a status hint (done), return it; else null.",
    "id": 'Kamu adalah pengklasifikasi. Balas HANYA JSON seperti: {"confirm": true|false, "status": "pending"|"done"|null}. '
          "Tentukan apakah pesan user adalah konfirmasi untuk membuat tugas. "
          "Jika ada indikasi status (done/selesai), kembalikan status itu; jika tidak ada, gunakan null.",
}

COMPLETION_SYSTEM_PROMPTS = {
    "en": "Answer in English.",
    "id": "Jawab dalam bahasa Indonesia.",
}

REPEAT_SCHEMA = {
    "type": "object",
    "description": "Optional repeat schedule. If enabled, the system creates new tasks at scheduled times.",
    "properties": {
        "enabled": {"type": "boolean"},
        "frequency": {"type": "string", "enum": ["daily", "weekly", "monthly"], "description": "Repeat frequency"},
        "interval": {"type": "integer", "minimum": 1, "maximum": 366, "description": "Every N units (default 1)"},
        "days_of_week": {
            "type": "array",
            "items": {"type": "integer"},
            "description": "0=Sun..6=Sat (UTC). For weekly, choose the days.",
        },
        "day_of_month": {"type": "integer", "description": "For monthly repeats: 1-31 (clamped to month length)"},
        "hour": {"type": "integer", "description": "UTC hour 0-23"},
        "minute": {"type": "integer", "description": "UTC minute 0-59"},
    },
}

TOOLS = [
    {
        "name": "create_task",
        "description": "Create a task for the current user. Use when enough details are known.",
        "input_schema": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Short task title"},
                "description": {"type": "string", "description": "Optional description"},
                "due_date": {
                    "type": "string",
                    "description": "Due date/time in ISO 8601 (UTC). Resolve relative or local times to a concrete future UTC timestamp.",
                },
                "status": {"type": "string", "enum": ["pending", "done"], "description": "Task status"},
                "repeat": REPEAT_SCHEMA,
            },
            "required": ["title"],
        },
    },
    {
        "name": "update_task",
        "description": "Update an existing task by its id for the current user.",
        "input_schema": {
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "Task id"},
                "title": {"type": "string"},
                "description": {"type": "string"},
                "due_date": {"type": "string", "description": "New due date/time in ISO 8601 (UTC)"},
                "status": {"type": "string", "enum": ["pending", "done"]},
            },
            "required": ["id"],
        },
    },
    {
        "name": "delete_task",
        "description": "Delete an existing task by its id for the current user.",
        "input_schema": {
            "type": "object",
            "properties": {"id": {"type": "string", "description": "Task id"}},
            "required": ["id"],
        },
    },
    {
        "name": "create_recurring",
        "description": "Create a recurring (habit) schedule for the current user at a specific UTC time.",
        "input_schema": {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "description": {"type": "string"},
                "hour": {"type": "integer", "description": "UTC hour 0-23"},
                "minute": {"type": "integer", "description": "UTC minute 0-59"},
                "days_of_week": {
                    "type": "array",
                    "items": {"type": "integer"},
                    "description": "0=Sun..6=Sat (UTC). For daily, include all 0-6.",
                },
            },
            "required": ["title", "hour", "minute"],
        },
    },
]

TOOL_NAMES = [tool["name"] for tool in TOOLS]

MESSAGES = {
    "en": {
        "ask_title": "What's the task title?",
        "ask_description": "Could you provide a short description?",
        "ask_due_date": "What's the due date/time (ISO, e.g., 2025-09-16T09:00:00Z, or say 'in 3 days')?",
        "status_default": "(Status defaults to 'pending' if not mentioned)",
        "default_title": "Task",
        "task_created": "Task created",
        "task_updated": "Task updated",
        "task_deleted": "Task deleted",
        "recurring_created": "Recurring task created",
        "rate_limited": "Rate limit hit (max {max} per {window}s). Try again in {seconds} seconds.",
        "error_prompt_required": "prompt is required (string)",
        "error_user_required": "user_id is required",
        "error_user_not_found": "User not found",
        "error_title_required_confirm": "title is required to confirm",
        "error_id_required_update": "id is required for update",
        "error_id_required_delete": "id is required for delete",
        "error_task_not_found": "Task not found",
        "error_forbidden": "Forbidden",
        "error_recurring_fields": "Need title, hour (0-23 UTC), and minute (0-59).",
        "error_no_response": "No response from model",
        "note_invalid_due": "Ignored invalid due_date; could not parse.",
        "note_past_due": "Ignored past due_date; provide a future date.",
        "proposal": 'So you have a {subject} at {when}. Should I create a task titled "{title}" at that time?',
        "title_updated": 'Okay, I\'ve updated the title. So "{title}" at {when}. Create it now?',
        "time_adjusted": 'Okay, I\'ve adjusted the time. So "{title}" at {when}. Create it now?',
    },
    "id": {
        "ask_title": "Judul tugasnya apa?",
        "ask_description": "Bisa beri deskripsi singkat?",
        "ask_due_date": "Tanggal/waktu deadlinenya kapan (ISO, mis. 2025-09-16T09:00:00Z, atau 'dalam 3 hari')?",
        "status_default": "(Status akan diset 'pending' jika tidak disebutkan)",
        "default_title": "Tugas",
        "task_created": "Task berhasil dibuat",
        "task_updated": "Task berhasil diupdate",
        "task_deleted": "Task berhasil dihapus",
        "recurring_created": "Recurring task dibuat",
        "rate_limited": "Kena rate limit (maks {max} per {window} detik). Coba lagi dalam {seconds} detik.",
        "error_prompt_required": "prompt wajib diisi (string)",
        "error_user_required": "user_id wajib diisi",
        "error_user_not_found": "User tidak ditemukan",
        "error_title_required_confirm": "title wajib diisi untuk konfirmasi",
        "error_id_required_update": "id wajib diisi untuk update",
        "error_id_required_delete": "id wajib diisi untuk hapus",
        "error_task_not_found": "Task tidak ditemukan",
        "error_forbidden": "Tidak diizinkan",
        "error_recurring_fields": "Butuh title, jam (0-23 UTC), dan menit (0-59).",
        "error_no_response": "Tidak ada respons dari model",
        "note_invalid_due": "due_date tidak valid; tidak bisa diparse.",
        "note_past_due": "due_date di masa lalu; mohon beri tanggal di masa depan.",
        "proposal": 'Jadi kamu punya {subject} pada {when}. Mau aku buat tugas berjudul "{title}" pada waktu itu?',
        "title_updated": 'Sip, judulnya aku ganti. Jadi "{title}" pada {when}. Mau aku buat?',
        "time_adjusted": 'Sip, jamnya aku ganti. Jadi "{title}" pada {when}. Mau aku buat?',
    },
}


def locale(lang: str | None) -> str:
    return "id" if str(lang or "").lower().startswith("id") else "en"


def messages_for(lang: str | None) -> dict:
    return MESSAGES[locale(lang)]
