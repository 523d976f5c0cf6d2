from datetime import timedelta

import pytest

from core import dates
from medical.services import save_visit


@pytest.mark.django_db
def test_register_mother(client):
    response = client.post('/api/users/register/', {
        'username': 'new_mother', 'password': 'Very-s3cure-pass', 'role': 'MOTHER',
    }, content_type='application/json')
    assert response.status_code == 201
    assert response.json()['role'] == 'MOTHER'


@pytest.mark.django_db
def test_doctor_adds_patient(client_for, doctor, other_mother):
    response = client_for(doctor).post('/api/booklets/', {
        'mother': str(other_mother.pk), 'label': 'Pregnancy 1', 'last_menstrual_period': '2024-01-01',
    }, format='json')
    assert response.status_code == 201
    body = response.json()
    assert body['expected_due_date'] == '2024-10-07'
    assert body['status'] == 'ACTIVE'


@pytest.mark.django_db
def test_second_active_booklet_returns_conflict(client_for, mother, booklet):
    response = client_for(mother).post('/api/booklets/', {'label': 'Another'}, format='json')
    assert response.status_code == 409
    body = response.json()
    assert body['code'] == 'conflict'
    assert body['conflicting_id'] == str(booklet.pk)


@pytest.mark.django_db
def test_booklets_are_private(client_for, booklet, other_doctor, other_mother):
    assert client_for(other_doctor).get(f'/api/booklets/{booklet.pk}/').status_code == 404
    assert client_for(other_mother).get('/api/booklets/').json()['results'] == []


@pytest.mark.django_db
def test_unknown_booklet_is_not_found(client_for, doctor):
    response = client_for(doctor).get('/api/timeline/booklets/00000000-0000-0000-0000-000000000000/summary/')
    assert response.status_code == 404
    assert response.json()['code'] == 'not_found'


@pytest.mark.django_db
def test_qr_handoff(client_for, booklet, mother, other_doctor):
    token = client_for(mother).post(f'/api/booklets/{booklet.pk}/access-token/').json()['token']
    response = client_for(other_doctor).post('/api/booklets/redeem-token/', {'token': token}, format='json')
    assert response.status_code == 200
    assert client_for(other_doctor).get(f'/api/booklets/{booklet.pk}/').status_code == 200


@pytest.mark.django_db
def test_patient_label_only_for_own_doctor(client_for, booklet, doctor, mother):
    client_for(doctor).post(f'/api/booklets/{booklet.pk}/patient-label/', {'patient_label': 'OB-17'}, format='json')
    assert client_for(doctor).get(f'/api/booklets/{booklet.pk}/').json()['patient_label'] == 'OB-17'
    assert client_for(mother).get(f'/api/booklets/{booklet.pk}/').json()['patient_label'] is None


@pytest.mark.django_db
def test_save_visit_endpoint(client_for, booklet, doctor):
    payload = {
        'booklet': str(booklet.pk),
        'entry': {'entry_type': 'PRENATAL_CHECKUP', 'vitals': {'blood_pressure': '120/80'}, 'risk_level': 'LOW'},
        'medications': [
            {'client_key': 'a', 'name': 'Iron', 'dosage': '325 mg', 'frequency_per_day': 1},
            {'client_key': 'b', 'name': 'Folic acid', 'dosage': '5 mg', 'frequency_per_day': 2},
        ],
        'lab_requests': [{'client_key': 'c', 'description': 'CBC'}],
    }
    response = client_for(doctor).post('/api/medical/save-visit/', payload, format='json')
    assert response.status_code == 201
    body = response.json()
    entry_id = body['entry']['id']
    assert len(body['medications']) == 2
    assert all(m['medical_entry'] == entry_id for m in body['medications'])
    assert body['lab_requests'][0]['status'] == 'PENDING'

    payload['entry_id'] = entry_id
    again = client_for(doctor).post('/api/medical/save-visit/', payload, format='json')
    assert again.status_code == 200
    assert again.json()['medications'] == []


@pytest.mark.django_db
def test_save_visit_rejects_foreign_deletion(client_for, booklet, doctor):
    old = save_visit(booklet.pk, doctor, visit_date=dates.today() - timedelta(days=7),
                     entry_fields={'entry_type': 'CONSULTATION'},
                     medication_drafts=[{'name': 'Iron', 'dosage': '325 mg', 'frequency_per_day': 1}])
    new = save_visit(booklet.pk, doctor, entry_fields={'entry_type': 'CONSULTATION'})

    response = client_for(doctor).post('/api/medical/save-visit/', {
        'booklet': str(booklet.pk),
        'entry_id': str(new.entry.pk),
        'deleted_medication_ids': [str(old.medications[0].pk)],
    }, format='json')
    assert response.status_code == 400
    assert response.json()['field'] == 'deleted_medication_ids'


@pytest.mark.django_db
def test_mother_cannot_save_visit(client_for, booklet, mother):
    response = client_for(mother).post('/api/medical/save-visit/', {
        'booklet': str(booklet.pk), 'entry': {'entry_type': 'OTHER'},
    }, format='json')
    assert response.status_code == 403


@pytest.mark.django_db
def test_medication_actions(client_for, booklet, doctor, mother):
    result = save_visit(booklet.pk, doctor, entry_fields={'entry_type': 'CONSULTATION'},
                        medication_drafts=[{'name': 'Iron', 'dosage': '325 mg', 'frequency_per_day': 2}])
    med = result.medications[0]
    today = dates.today()

    logged = client_for(mother).post(f'/api/medications/{med.pk}/log-intake/', {
        'dose_index': 1, 'status': 'taken',
    }, format='json')
    assert logged.status_code == 200
    assert logged.json()['status'] == 'TAKEN'

    assert client_for(mother).post(f'/api/medications/{med.pk}/stop/', {}, format='json').status_code == 403

    extended = client_for(doctor).post(f'/api/medications/{med.pk}/extend/', {
        'end_date': (today + timedelta(days=5)).isoformat(), 'expected_version': med.version,
    }, format='json')
    assert extended.status_code == 200
    assert extended.json()['days_remaining'] == 5

    stale = client_for(doctor).post(f'/api/medications/{med.pk}/stop/', {
        'expected_version': med.version,
    }, format='json')
    assert stale.status_code == 409
    assert stale.json()['code'] == 'stale_record'

    stopped = client_for(doctor).post(f'/api/medications/{med.pk}/stop/', {}, format='json')
    assert stopped.json()['is_active'] is False
    assert stopped.json()['status'] == 'stopped'


@pytest.mark.django_db
def test_lab_endpoints(client_for, booklet, doctor, mother):
    created = client_for(doctor).post('/api/lab/requests/', {
        'booklet': str(booklet.pk), 'description': 'OGTT', 'priority': 'STAT',
    }, format='json')
    assert created.status_code == 201
    lab_id = created.json()['id']

    assert client_for(doctor).get('/api/lab/requests/pending-mine/').json()[0]['id'] == lab_id
    assert client_for(mother).post(f'/api/lab/requests/{lab_id}/cancel/', {}, format='json').status_code == 403

    uploaded = client_for(mother).post(f'/api/lab/requests/{lab_id}/upload-results/', {
        'attachments': ['uploads/ogtt.jpg'],
    }, format='json')
    assert uploaded.status_code == 200
    assert uploaded.json()['uploaded_by_mother'] == str(mother.pk)

    reopen = client_for(doctor).post(f'/api/lab/requests/{lab_id}/cancel/', {}, format='json')
    assert reopen.status_code == 409
    assert reopen.json()['code'] == 'invalid_transition'
    assert client_for(doctor).delete(f'/api/lab/requests/{lab_id}/').status_code == 405


@pytest.mark.django_db
def test_timeline_and_my_patients(client_for, booklet, doctor):
    earlier = dates.today() - timedelta(days=14)
    save_visit(booklet.pk, doctor, visit_date=earlier, entry_fields={'entry_type': 'ULTRASOUND'})
    save_visit(booklet.pk, doctor, entry_fields={'entry_type': 'PRENATAL_CHECKUP'},
               lab_drafts=[{'description': 'CBC'}])

    timeline = client_for(doctor).get(f'/api/timeline/booklets/{booklet.pk}/').json()
    assert timeline['selected_date'] == dates.today().isoformat()
    assert timeline['dates'] == [dates.today().isoformat(), earlier.isoformat()]
    assert len(timeline['selected']['lab_requests']) == 1

    picked = client_for(doctor).get(f'/api/timeline/booklets/{booklet.pk}/', {'date': earlier.isoformat()}).json()
    assert picked['selected_date'] == earlier.isoformat()
    assert picked['selected']['entries'][0]['entry_type'] == 'ULTRASOUND'

    patients = client_for(doctor).get('/api/timeline/my-patients/').json()
    assert len(patients) == 1
    assert patients[0]['pending_lab_count'] == 1
    assert patients[0]['last_visit_date'] == dates.today().isoformat()


@pytest.mark.django_db
def test_profile_hides_role_changes(client_for, mother):
    response = client_for(mother).patch('/api/users/me/', {'first_name': 'Maria Luisa', 'role': 'ADMIN'}, format='json')
    assert response.status_code == 200
    mother.refresh_from_db()
    assert mother.first_name == 'Maria Luisa'
    assert mother.role == 'MOTHER'


@pytest.mark.django_db
def test_missing_record_body_has_code(client_for, doctor):
    response = client_for(doctor).get('/api/medications/00000000-0000-0000-0000-000000000000/')
    assert response.status_code == 404
    assert response.json()['code'] == 'not_found'


@pytest.mark.django_db
def test_serializer_errors_are_wrapped(client_for, doctor, booklet):
    response = client_for(doctor).post('/api/medical/save-visit/', {
        'booklet': str(booklet.pk),
        'medications': [{'name': 'Iron', 'dosage': '325 mg', 'frequency_per_day': 7}],
    }, format='json')
    assert response.status_code == 400
    body = response.json()
    assert body['code'] == 'validation_error'
    assert 'medications' in body['errors']


@pytest.mark.django_db
def test_complete_rejects_unreadable_delivery_date(client_for, booklet, doctor):
    response = client_for(doctor).post(f'/api/booklets/{booklet.pk}/complete/',
                                       {'actual_delivery_date': 'yesterday-ish'}, format='json')
    assert response.status_code == 400
    body = response.json()
    assert body['code'] == 'validation_error'
    assert 'actual_delivery_date' in body['errors']
    booklet.refresh_from_db()
    assert booklet.status == 'ACTIVE'


@pytest.mark.django_db
def test_out_of_range_timestamp_is_a_validation_error(client_for, booklet, doctor):
    response = client_for(doctor).post('/api/medical/save-visit/', {
        'booklet': str(booklet.pk),
        'visit_date': 10 ** 30,
        'entry': {'entry_type': 'CONSULTATION'},
    }, format='json')
    assert response.status_code == 400
    assert response.json()['code'] == 'validation_error'
