from rest_framework import serializers


class ChatMessageSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=['user', 'assistant'])
    content = serializers.CharField()


class ChatRequestSerializer(serializers.Serializer):
    message = serializers.CharField(max_length=4000)
    history = ChatMessageSerializer(many=True, required=False)


class ChatOptionsSerializer(serializers.Serializer):
    smart_mode = serializers.ChoiceField(choices=['create', 'edit'], required=False, allow_null=True)


class AdminChatRequestSerializer(ChatRequestSerializer):
    options = ChatOptionsSerializer(required=False)
