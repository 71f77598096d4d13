"""One-time DB setup: create tables and seed demo content and tokens."""
import uuid

from assessment.core.security import create_access_token
from assessment.db.session import Base, get_engine, get_session_factory
from assessment.db.models import Question, QuestionKindEnum, Quiz, Subject

# 1. Create all tables
engine = get_engine()
Base.metadata.create_all(bind=engine)
print("✅ All tables created")

session_factory = get_session_factory()
with session_factory() as db:
    # 2. Open subject + gated subject
    open_subject = db.query(Subject).filter(Subject.title == "General Knowledge").first()
    if not open_subject:
        open_subject = Subject(title="General Knowledge", requires_approval=False)
        db.add(open_subject)
        db.commit()
        db.refresh(open_subject)
        print(f"✅ Created open subject (id={open_subject.id})")
    else:
        print("  Open subject already exists")

    gated = db.query(Subject).filter(Subject.title == "Driving Theory").first()
    if not gated:
        gated = Subject(title="Driving Theory", requires_approval=True)
        db.add(gated)
        db.commit()
        db.refresh(gated)
        print(f"✅ Created gated subject (id={gated.id})")
    else:
        print("  Gated subject already exists")

    # 3. Demo quiz with negative marking
    quiz = db.query(Quiz).filter(Quiz.title == "Warm-up quiz").first()
    if not quiz:
        quiz = Quiz(
            title="Warm-up quiz",
            subject_id=open_subject.id,
            duration_minutes=10,
            max_attempts=3,
            pass_threshold=50.0,
        )
        quiz.questions = [
            Question(
                position=0,
                text="2 + 2 = ?",
                kind=QuestionKindEnum.SINGLE,
                options=["3", "4", "5", "22"],
                correct_options=[1],
                marks=5.0,
                negative_marks=1.0,
            ),
            Question(
                position=1,
                text="Which of these are prime?",
                kind=QuestionKindEnum.MULTIPLE,
                options=["2", "4", "7", "9"],
                correct_options=[0, 2],
                marks=5.0,
                negative_marks=1.0,
            ),
        ]
        db.add(quiz)
        db.commit()
        print(f"✅ Created demo quiz (id={quiz.id})")
    else:
        print("  Demo quiz already exists")

# 4. Dev tokens (the real ones come from the auth service)
admin_token = create_access_token(uuid.uuid4(), capabilities=["admin"])
learner_token = create_access_token(uuid.uuid4())
print(f"\nAdmin token:   {admin_token}")
print(f"Learner token: {learner_token}")

print("\n✅ Database seeded successfully!")
