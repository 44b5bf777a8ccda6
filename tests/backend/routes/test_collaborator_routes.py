from datetime import date

import pytest

from backend.core.errors import InternalError
from backend.documents import DocumentCollection
from backend.routes.medical_record_routes import summarize_medical_records
from backend.routes.message_routes import conversation_id_for, group_conversations
from backend.routes.review_routes import summarize_reviews
from backend.routes.session_routes import summarize_session_progress
from backend.routes.treatment_plan_routes import summarize_plan_progress


def patient_payload(**overrides) -> dict:
    return {
        'patientId': 'jdoe',
        'firstName': 'Jane',
        'lastName': 'Doe',
        'email': ' Jane.Doe@Example.com ',
        **overrides,
    }


def test_document_collection_filters_and_updates(db) -> None:
    notes = DocumentCollection(db, 'notes', 'noteId')
    notes.create({'noteId': 'n1', 'owner': 'a', 'rank': 2})
    notes.create({'noteId': 'n2', 'owner': 'b', 'rank': 1})
    notes.create({'noteId': 'n3', 'owner': 'a'})

    assert [note['noteId'] for note in notes.find(filters={'owner': 'a', 'rank': None})] == ['n1', 'n3']
    assert [note['noteId'] for note in notes.find(sort_key='rank')] == ['n2', 'n1', 'n3']

    updated = notes.update('n2', {'rank': 5, 'noteId': 'ignored'})
    assert updated['noteId'] == 'n2'
    assert updated['rank'] == 5
    assert notes.update('missing', {'rank': 1}) is None
    assert notes.delete('n1') is True
    assert notes.get('n1') is None


def test_create_patient_normalizes_email_and_allows_email_lookup(client) -> None:
    response = client.post('/api/patients', json=patient_payload())

    assert response.status_code == 201
    assert response.json()['patient']['email'] == 'jane.doe@example.com'

    by_email = client.get('/api/patients/jane.doe@example.com')
    assert by_email.status_code == 200
    assert by_email.json()['patientId'] == 'jdoe'


def test_create_patient_rejects_duplicate_email_and_id(client) -> None:
    client.post('/api/patients', json=patient_payload())

    duplicate_email = client.post('/api/patients', json=patient_payload(patientId='other'))
    assert duplicate_email.status_code == 400
    assert duplicate_email.json() == {'message': 'Patient with email jane.doe@example.com already exists'}

    duplicate_id = client.post('/api/patients', json=patient_payload(email='other@example.com'))
    assert duplicate_id.status_code == 400
    assert duplicate_id.json() == {'message': 'Patient with username jdoe already exists'}


def test_missing_patient_is_not_found(client) -> None:
    response = client.get('/api/patients/nobody')

    assert response.status_code == 404
    assert response.json() == {'message': 'No patient found with ID or email nobody'}


def test_therapist_profile_lives_beside_availability(client) -> None:
    created = client.post(
        '/api/therapists',
        json={'therapistId': 'T1', 'firstName': 'Sam', 'lastName': 'Lee', 'email': 'sam@clinic.org'},
    )
    assert created.status_code == 201
    assert created.json()['therapist']['type'] == 'therapist'

    assert client.get('/api/therapists/T1').json()['email'] == 'sam@clinic.org'
    assert client.get('/api/therapists/T1/availability').status_code == 404


def test_conversation_id_is_order_independent() -> None:
    assert conversation_id_for('P1', 'T1') == 'P1-T1'
    assert conversation_id_for('T1', 'P1') == 'P1-T1'


def test_group_conversations_counts_unread_for_receiver() -> None:
    messages = [
        {'messageId': 'm3', 'conversationId': 'P1-T1', 'receiverId': 'P1', 'isRead': False},
        {'messageId': 'm2', 'conversationId': 'P1-T2', 'receiverId': 'T2', 'isRead': False},
        {'messageId': 'm1', 'conversationId': 'P1-T1', 'receiverId': 'P1', 'isRead': True},
    ]

    conversations = group_conversations(messages, 'P1')

    assert [conversation['conversationId'] for conversation in conversations] == ['P1-T1', 'P1-T2']
    assert conversations[0]['lastMessage']['messageId'] == 'm3'
    assert conversations[0]['unreadCount'] == 1
    assert conversations[1]['unreadCount'] == 0


def test_send_and_read_message(client) -> None:
    response = client.post(
        '/api/messages',
        json={
            'senderId': 'T1',
            'senderType': 'therapist',
            'receiverId': 'P1',
            'receiverType': 'patient',
            'content': 'See you Monday',
        },
    )
    assert response.status_code == 201
    message = response.json()['data']
    assert message['conversationId'] == 'P1-T1'
    assert message['isRead'] is False

    read = client.patch(f"/api/messages/{message['messageId']}/read").json()['data']
    assert read['isRead'] is True
    assert read['readAt'] is not None

    conversations = client.get('/api/messages/user/P1').json()
    assert conversations[0]['unreadCount'] == 0


def test_summarize_reviews_reports_distribution_and_averages() -> None:
    reviews = [
        {'rating': 5, 'categories': {'empathy': 5, 'communication': 4}, 'isVerified': True},
        {'rating': 4, 'categories': {'empathy': 4}, 'isVerified': False},
        {'rating': 4, 'categories': None},
    ]

    summary = summarize_reviews(reviews)

    assert summary['totalReviews'] == 3
    assert summary['averageRating'] == 4.33
    assert summary['ratingDistribution'] == {'5': 1, '4': 2, '3': 0, '2': 0, '1': 0}
    assert summary['categoryAverages'] == {
        'professionalism': None,
        'communication': 4.0,
        'effectiveness': None,
        'empathy': 4.5,
    }
    assert summary['verifiedReviews'] == 1


def test_review_stats_ignore_hidden_reviews(client) -> None:
    client.post('/api/reviews', json={'therapistId': 'T1', 'patientId': 'P1', 'rating': 5})
    client.post('/api/reviews', json={'therapistId': 'T1', 'patientId': 'P2', 'rating': 1, 'isVisible': False})

    stats = client.get('/api/reviews/therapist/T1/stats').json()

    assert stats['totalReviews'] == 1
    assert stats['averageRating'] == 5.0


def test_summarize_session_progress_tracks_mood_improvement() -> None:
    sessions = [
        {'sessionDate': '2024-05-01T09:00:00', 'sessionType': 'initial', 'mood': {'before': 3, 'after': 6}},
        {'sessionDate': '2024-05-08T09:00:00', 'mood': {'before': 5, 'after': 6}},
        {'sessionDate': '2024-05-15T09:00:00', 'mood': None},
    ]

    progress = summarize_session_progress(sessions)

    assert progress['totalSessions'] == 3
    assert progress['sessionTypes'] == {'initial': 1, 'follow-up': 2}
    assert progress['averageImprovement'] == 2.0
    assert progress['moodProgress'][2]['improvement'] is None


def test_summarize_medical_records_keeps_current_medications_only() -> None:
    records = [
        {
            'recordType': 'medication',
            'medications': [
                {'name': 'A', 'endDate': '2024-01-01'},
                {'name': 'B', 'endDate': None},
                {'name': 'C', 'endDate': '2024-12-31'},
            ],
        },
        {'recordType': 'diagnosis', 'diagnosis': {'code': 'F41.1', 'name': 'GAD'}, 'createdAt': '2024-05-01'},
        {'recordType': 'allergy', 'allergies': [{'allergen': 'Penicillin'}]},
    ]

    summary = summarize_medical_records(records, today=date(2024, 6, 1))

    assert summary['totalRecords'] == 3
    assert summary['recordsByType'] == {'medication': 1, 'diagnosis': 1, 'allergy': 1}
    assert [medication['name'] for medication in summary['currentMedications']] == ['B', 'C']
    assert summary['activeDiagnoses'][0]['code'] == 'F41.1'
    assert summary['allergies'] == [{'allergen': 'Penicillin'}]


def test_summarize_plan_progress_averages_goal_progress() -> None:
    plans = [
        {'status': 'active', 'goals': [{'status': 'achieved', 'progress': 100}, {'status': 'in-progress', 'progress': 50}]},
        {'status': 'completed', 'goals': [{'status': 'in-progress', 'progress': 30}]},
        {'status': 'active', 'goals': []},
    ]

    progress = summarize_plan_progress(plans)

    assert progress['totalPlans'] == 3
    assert progress['activePlans'] == 2
    assert progress['completedPlans'] == 1
    assert progress['goalsAchieved'] == 1
    assert progress['goalsInProgress'] == 2
    assert progress['overallProgress'] == 60.0


def test_treatment_plan_goals_and_milestones(client) -> None:
    created = client.post(
        '/api/treatment-plans',
        json={
            'patientId': 'P1',
            'therapistId': 'T1',
            'title': 'Anxiety management',
            'startDate': '2024-05-01',
            'goals': [{'description': 'Sleep 7 hours'}],
        },
    )
    assert created.status_code == 201
    plan = created.json()['plan']
    goal_id = plan['goals'][0]['goalId']
    assert len(goal_id) == 16

    updated = client.patch(
        f"/api/treatment-plans/{plan['planId']}/goals/{goal_id}",
        json={'status': 'in-progress', 'progress': 40},
    ).json()['plan']
    assert updated['goals'][0]['progress'] == 40

    with_milestone = client.post(
        f"/api/treatment-plans/{plan['planId']}/milestones",
        json={'title': 'First month'},
    ).json()['plan']
    assert with_milestone['milestones'][0]['title'] == 'First month'

    missing_goal = client.patch(f"/api/treatment-plans/{plan['planId']}/goals/nope", json={'progress': 10})
    assert missing_goal.status_code == 404
    assert missing_goal.json() == {'message': 'Goal with ID nope not found'}

    progress = client.get('/api/treatment-plans/patient/P1/progress').json()
    assert progress['goalsInProgress'] == 1
    assert progress['overallProgress'] == 40.0


@pytest.mark.parametrize(
    ('module', 'url'),
    [
        ('patient_routes', '/api/patients'),
        ('therapist_routes', '/api/therapists'),
        ('session_routes', '/api/sessions'),
        ('medical_record_routes', '/api/medical-records/patient/P1'),
        ('message_routes', '/api/messages/user/P1'),
        ('review_routes', '/api/reviews/patient/P1'),
        ('treatment_plan_routes', '/api/treatment-plans/patient/P1'),
    ],
)
def test_collaborator_routes_report_unavailable_database(client, monkeypatch: pytest.MonkeyPatch, module: str, url: str) -> None:
    def database_down() -> None:
        raise InternalError('Database unavailable. Verify DATABASE_URL and database credentials.', error='refused')

    monkeypatch.setattr(f'backend.routes.{module}.ensure_database_ready', database_down)

    response = client.get(url)

    assert response.status_code == 500
    assert response.json() == {
        'message': 'Database unavailable. Verify DATABASE_URL and database credentials.',
        'error': 'refused',
    }
