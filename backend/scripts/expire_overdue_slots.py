"""
定时任务：把已过截止时间（due_at）仍处于 claimed 的审稿名额标记为 expired

用法（cron / CI schedule）:
    SUPABASE_URL=... SUPABASE_ANON_KEY=... python backend/scripts/expire_overdue_slots.py

中文注释: 客户端本身从不自动过期名额，过期只由这个脚本显式触发。
"""

import logging
import os
import sys

from dotenv import load_dotenv

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from journalflow.services.review_service import ReviewService  # noqa: E402

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("journalflow.jobs")


def main() -> int:
    load_dotenv()
    result = ReviewService().expire_overdue_slots()
    if result.error is not None:
        logger.error("expire overdue slots failed: %s", result.error.message)
        return 1
    logger.info("expired %d review slot(s): %s", len(result.data or []), ", ".join(result.data or []))
    return 0


if __name__ == "__main__":
    sys.exit(main())
