"""
Create a demo customer with two medical exams.

Run this script to get data for trying out both report kinds: a
health assessment of either exam, or a comparison of the two.
"""

import asyncio
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

# Add the repository root to the Python path
package_dir = Path(__file__).parent
sys.path.insert(0, str(package_dir.parent))

# Load environment variables from .env file
load_dotenv(package_dir.parent / ".env")

from stemcare.app.db.base import dispose_engine, get_session_factory, init_models
from stemcare.app.models import Customer, HealthAssessment, LaboratoryItem

DEMO_CUSTOMER_NAME = "演示客户"

# (exam id, date, blood pressure, fasting glucose, ALT)
DEMO_EXAMS = [
    ("EXAM-2023-001", "2023-05-12", "128/84", "5.9", "38"),
    ("EXAM-2024-001", "2024-05-20", "136/88", "6.4", "52"),
]


def _department_items(blood_pressure: str) -> str:
    return json.dumps(
        [
            {"itemName": "血压", "itemResult": f"{blood_pressure} mmHg"},
            {"itemName": "心率", "itemResult": "76 次/分"},
            {"itemName": "心肺听诊", "itemResult": "未见异常"},
        ],
        ensure_ascii=False,
    )


async def create_demo_data():
    print("Creating demo data...")
    await init_models()

    session_factory = get_session_factory()
    async with session_factory() as db:
        customer = Customer(name=DEMO_CUSTOMER_NAME, identity_card="110101199001011234")
        db.add(customer)
        await db.commit()
        await db.refresh(customer)
        print(f"Created customer: {customer.name} ({customer.id})")

        for exam_id, exam_date, blood_pressure, glucose, alt in DEMO_EXAMS:
            db.add(
                HealthAssessment(
                    customer_id=customer.id,
                    medical_exam_id=exam_id,
                    department="内科",
                    assessment_date=exam_date,
                    doctor="李医生",
                    assessment_data=_department_items(blood_pressure),
                    summary="血压偏高，建议随访",
                )
            )
            db.add_all([
                LaboratoryItem(
                    customer_id=customer.id,
                    exam_id=exam_id,
                    test_category="生化",
                    item_name="空腹血糖",
                    item_result=glucose,
                    item_unit="mmol/L",
                    reference_value="3.9-6.1",
                    abnormal_flag=float(glucose) > 6.1,
                ),
                LaboratoryItem(
                    customer_id=customer.id,
                    exam_id=exam_id,
                    test_category="肝功能",
                    item_name="谷丙转氨酶(ALT)",
                    item_result=alt,
                    item_unit="U/L",
                    reference_value="7-40",
                    abnormal_flag=float(alt) > 40,
                ),
            ])
            print(f"  Added exam {exam_id} ({exam_date})")

        await db.commit()

    await dispose_engine()

    print("\nDemo data created successfully!")
    print(f"Customer ID: {customer.id}")
    print(f"Exam IDs: {', '.join(exam[0] for exam in DEMO_EXAMS)}")


if __name__ == "__main__":
    asyncio.run(create_demo_data())
