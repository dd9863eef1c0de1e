"""
sample_questions.py — 데모/스모크 실행용 샘플 문제 세트 (물리: 단위와 측정)
"""

from mock_test_engine.models.question_model import Question, QuestionSet

SAMPLE_QUESTION_SET = QuestionSet(
    id="sample-units-measurements",
    title="단위와 측정 샘플 모의고사",
    questions=[
        Question(
            id="q1", topic="단위계", difficulty="easy",
            text="SI 기본 단위가 아닌 것은?",
            options=["① 켈빈", "② 칸델라", "③ 뉴턴", "④ 몰"],
            correct_index=2,
            solution="뉴턴(N)은 kg·m/s² 로 정의되는 유도 단위입니다.",
            pyq_year=2019,
        ),
        Question(
            id="q2", topic="차원 분석", difficulty="medium",
            text="일(work)의 차원으로 옳은 것은?",
            options=["① [MLT⁻²]", "② [ML²T⁻²]", "③ [ML²T⁻³]", "④ [MLT⁻¹]"],
            correct_index=1,
            solution="일 = 힘 × 거리 = [MLT⁻²][L] = [ML²T⁻²].",
        ),
        Question(
            id="q3", topic="차원 분석", difficulty="hard",
            text="플랑크 상수 h의 차원은 각운동량의 차원과 같다.",
            options=["O", "X"],
            correct_index=0,
            solution="E = hν 에서 h = [ML²T⁻¹] 이며 각운동량 L = mvr 과 같습니다.",
            per_question_time_limit_seconds=30,
            pyq_year=2021,
        ),
        Question(
            id="q4", topic="유효숫자", difficulty="easy",
            text="0.00450 의 유효숫자 개수는?",
            options=["① 2", "② 3", "③ 5", "④ 6"],
            correct_index=1,
            solution="앞쪽 0은 자리만 나타내고, 4·5·마지막 0이 유효숫자입니다.",
        ),
        Question(
            id="q5", topic="오차", difficulty="medium",
            text="길이 측정의 상대 오차가 1%일 때 부피(정육면체)의 상대 오차는?",
            options=["① 1%", "② 2%", "③ 3%", "④ 6%"],
            correct_index=2,
            solution="V = a³ 이므로 ΔV/V = 3·Δa/a = 3%.",
        ),
    ],
)
