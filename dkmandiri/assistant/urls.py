from django.urls import path
from .views import assistant_chat, assistant_chat_personalized, aiservice_chat

urlpatterns = [
    path('assistant/chat/', assistant_chat, name='assistant-chat'),
    path('assistant/chat/personalized/', assistant_chat_personalized, name='assistant-chat-personalized'),
    path('aiservice/chat/', aiservice_chat, name='aiservice-chat'),
]
