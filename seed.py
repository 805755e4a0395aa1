#!/usr/bin/env python3
"""
Seed script for the SEEN deadline service database.
This script creates a demo pod with goals spread across several time zones
so the deadline evaluator has something to chew on locally.
"""

import sys
from datetime import time
from app import create_app
from extensions import db
from models import Goal, FrequencyType

DEMO_POD_ID = 'demo-pod'

DEMO_GOALS = [
    {"user_id": "demo-ana", "title": "Morning run", "timezone": "America/Chicago",
     "frequency_type": FrequencyType.DAILY, "frequency_days": [],
     "deadline_time": time(9, 0), "reminder_time": time(7, 30)},
    {"user_id": "demo-ana", "title": "Read 20 pages", "timezone": "America/Chicago",
     "frequency_type": FrequencyType.SPECIFIC_DAYS, "frequency_days": [1, 3, 5],
     "deadline_time": time(23, 59), "reminder_time": time(21, 0)},
    {"user_id": "demo-ben", "title": "Gym", "timezone": "Europe/London",
     "frequency_type": FrequencyType.SPECIFIC_DAYS, "frequency_days": [1, 3],
     "deadline_time": time(20, 0), "reminder_time": None, "requires_proof": True},
    {"user_id": "demo-ben", "title": "Call home", "timezone": "Europe/London",
     "frequency_type": FrequencyType.WEEKLY, "frequency_days": [0],
     "deadline_time": time(18, 0), "reminder_time": time(12, 0)},
    {"user_id": "demo-chi", "title": "Meditate", "timezone": "Asia/Tokyo",
     "frequency_type": FrequencyType.DAILY, "frequency_days": [],
     "deadline_time": time(22, 30), "reminder_time": time(21, 30)},
    {"user_id": "demo-chi", "title": "Journal", "timezone": "Australia/Sydney",
     "frequency_type": FrequencyType.DAILY, "frequency_days": [],
     "deadline_time": time(23, 0), "reminder_time": None},
]

def seed_demo_goals():
    """Seed the database with demo goals."""
    print("🌱 Starting database seeding...")

    # Create Flask app context
    app = create_app()

    with app.app_context():
        try:
            # Create all tables if they don't exist
            db.create_all()
            print("✅ Database tables created/verified")

            initial_count = Goal.query.filter_by(pod_id=DEMO_POD_ID).count()
            print(f"📊 Current demo goals in database: {initial_count}")

            added = 0
            for goal_data in DEMO_GOALS:
                existing = Goal.query.filter_by(
                    pod_id=DEMO_POD_ID,
                    user_id=goal_data["user_id"],
                    title=goal_data["title"],
                ).first()
                if existing:
                    continue
                db.session.add(Goal(pod_id=DEMO_POD_ID, **goal_data))
                added += 1

            db.session.commit()

            print("✅ Seeding completed successfully!")
            print(f"📈 Added {added} new demo goals")

            print("\n📋 Demo goals in database:")
            for goal in Goal.query.filter_by(pod_id=DEMO_POD_ID).order_by(Goal.user_id, Goal.id).all():
                print(f"   • {goal.user_id}: {goal.title} - {goal.schedule.describe()} "
                      f"by {goal.deadline_time.strftime('%H:%M')} ({goal.timezone})")

        except Exception as e:
            print(f"❌ Error during seeding: {e}")
            db.session.rollback()
            sys.exit(1)

def clear_demo_goals():
    """Clear all demo goals (and their check-ins) from the database."""
    app = create_app()

    with app.app_context():
        try:
            goals = Goal.query.filter_by(pod_id=DEMO_POD_ID).all()
            if not goals:
                print("ℹ️  No demo goals to clear")
                return

            for goal in goals:
                db.session.delete(goal)
            db.session.commit()
            print(f"🗑️  Cleared {len(goals)} demo goals from database")

        except Exception as e:
            print(f"❌ Error clearing demo goals: {e}")
            db.session.rollback()
            sys.exit(1)

def main():
    """Main function to handle command line arguments."""
    if len(sys.argv) > 1:
        if sys.argv[1] == '--clear':
            print("🗑️  Clearing demo goals...")
            clear_demo_goals()
            return
        elif sys.argv[1] == '--help' or sys.argv[1] == '-h':
            print("SEEN Deadline Service Seeder")
            print("Usage:")
            print("  python seed.py          - Seed demo goals")
            print("  python seed.py --clear  - Clear demo goals")
            print("  python seed.py --help   - Show this help message")
            return
        else:
            print(f"❌ Unknown argument: {sys.argv[1]}")
            print("Use 'python seed.py --help' for usage information")
            sys.exit(1)

    # Default action: seed the database
    seed_demo_goals()

if __name__ == '__main__':
    main()
