"""
Test suite for community reviews and the contact form
"""
import io
import shutil
import tempfile
from datetime import timedelta

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from django.utils import timezone
from PIL import Image
from rest_framework import status

from dkmandiri.community.models import Review, ContactMessage
from dkmandiri.core.test_utils import TestDataFactory, AuthenticatedAPIClient

MEDIA_ROOT = tempfile.mkdtemp()


@override_settings(MEDIA_ROOT=MEDIA_ROOT)
class ReviewAPITests(TestCase):
    """Test review listing, posting and moderation"""

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(MEDIA_ROOT, ignore_errors=True)
        super().tearDownClass()

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def payload(self, **overrides):
        data = {'name': 'Bu Tini', 'email': 'tini@example.com', 'message': 'Ikannya segar!', 'rating': 5}
        data.update(overrides)
        return data

    def test_anonymous_review(self):
        response = self.client.post('/api/v1/community/', self.payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertNotIn('email', response.data)
        self.assertIsNone(Review.objects.get().user)

    def test_review_links_authenticated_user(self):
        user = TestDataFactory.create_user()
        self.client.authenticate_user(user)
        self.client.post('/api/v1/community/', self.payload(), format='json')
        self.assertEqual(Review.objects.get().user, user)

    def test_review_with_image(self):
        buffer = io.BytesIO()
        Image.new('RGB', (8, 8)).save(buffer, format='JPEG')
        image = SimpleUploadedFile('foto.jpg', buffer.getvalue(), content_type='image/jpeg')
        response = self.client.post('/api/v1/community/', self.payload(image=image), format='multipart')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(Review.objects.get().image.name.startswith('reviews/'))

    def test_rating_out_of_range(self):
        for rating in (0, 6):
            response = self.client.post('/api/v1/community/', self.payload(rating=rating), format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertIn('rating', response.data)

    def test_list_newest_first(self):
        old = Review.objects.create(name='Lama', email='a@example.com', message='ok', rating=4)
        Review.objects.filter(pk=old.pk).update(created_at=timezone.now() - timedelta(days=1))
        Review.objects.create(name='Baru', email='b@example.com', message='ok', rating=5)
        response = self.client.get('/api/v1/community/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([r['name'] for r in response.data], ['Baru', 'Lama'])

    def test_admin_deletes_review(self):
        review = Review.objects.create(name='Spam', email='s@example.com', message='spam', rating=1)
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.delete(f'/api/v1/community/{review.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(TestDataFactory.create_admin())
        response = self.client.delete(f'/api/v1/community/{review.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Review.objects.exists())


class ContactAPITests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_submit_contact(self):
        response = self.client.post('/api/v1/contact/submit/', {
            'name': 'Pak Budi', 'email': 'budi@example.com', 'message': 'Apakah bisa kirim ke Sumpiuh?'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertEqual(ContactMessage.objects.get().name, 'Pak Budi')

    def test_submit_invalid_contact(self):
        response = self.client.post('/api/v1/contact/submit/', {
            'name': 'Pak Budi', 'email': 'bukan-email', 'message': 'hi'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertIn('email', response.data['errors'])
        self.assertIn('message', response.data['errors'])
