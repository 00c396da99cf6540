"""Demo schedule: three slots spread over the day."""

from datetime import datetime, timedelta
from typing import Optional

from .models import Mode, WebinarSlot, utcnow


def sample_slots(now: Optional[datetime] = None) -> list[WebinarSlot]:
    now = now or utcnow()
    return [
        WebinarSlot(
            id='morning_sales_training',
            name='Morning Webinar - Sales Training',
            replay_url='https://demo.everwebinar.com/session/sales-training-12345',
            live_url='https://zoom.us/j/123456789?pwd=dGVzdHBhc3N3b3Jk',
            scheduled_start_time=now,
            scheduled_switch_time=now + timedelta(minutes=75),
            is_active=True,
            current_mode=Mode.REPLAY,
        ),
        WebinarSlot(
            id='afternoon_product_demo',
            name='Afternoon Webinar - Product Demo',
            replay_url='https://demo.everwebinar.com/session/product-demo-67890',
            live_url='https://zoom.us/j/987654321?pwd=cHJvZHVjdGRlbW8=',
            scheduled_start_time=now + timedelta(hours=4),
            scheduled_switch_time=now + timedelta(hours=5, minutes=15),
            is_active=True,
            current_mode=Mode.REPLAY,
        ),
        WebinarSlot(
            id='evening_qna_session',
            name='Evening Webinar - Q&A Session',
            replay_url='https://demo.everwebinar.com/session/qna-session-11111',
            live_url='https://zoom.us/j/555666777?pwd=cW5hc2Vzc2lvbg==',
            scheduled_start_time=now + timedelta(hours=8),
            scheduled_switch_time=now + timedelta(hours=9, minutes=15),
            is_active=True,
            current_mode=Mode.REPLAY,
        ),
    ]
