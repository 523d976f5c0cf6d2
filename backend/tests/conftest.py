from datetime import timedelta

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from booklets.services import create_booklet_for_patient
from core import dates

User = get_user_model()


@pytest.fixture
def mother(db):
    return User.objects.create_user(
        username='maria', password='S3cure-pass!', role='MOTHER', first_name='Maria', last_name='Santos'
    )


@pytest.fixture
def other_mother(db):
    return User.objects.create_user(username='ana', password='S3cure-pass!', role='MOTHER')


@pytest.fixture
def doctor(db):
    return User.objects.create_user(
        username='dr_reyes', password='S3cure-pass!', role='DOCTOR', first_name='Jose', last_name='Reyes'
    )


@pytest.fixture
def other_doctor(db):
    return User.objects.create_user(username='dr_cruz', password='S3cure-pass!', role='DOCTOR')


@pytest.fixture
def booklet(mother, doctor):
    return create_booklet_for_patient(
        mother,
        'First pregnancy',
        doctor=doctor,
        expected_due_date=dates.today() + timedelta(days=120),
        allergies=['Penicillin'],
    )


@pytest.fixture
def client_for():
    def _client(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return _client
