from pytest_bdd import scenarios

scenarios("conversation.feature")
