from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class TelegramLogin(BaseModel):
    provider: Literal["telegram"] = "telegram"
    telegram_id: int


class VkLogin(BaseModel):
    provider: Literal["vk"] = "vk"
    vk_id: int


class PasswordLogin(BaseModel):
    provider: Literal["password"] = "password"
    login: str


# Способ входа, которым был выпущен токен
LoginMethod = Annotated[
    Union[TelegramLogin, VkLogin, PasswordLogin],
    Field(discriminator="provider"),
]


class TokenPayload(BaseModel):
    user_id: str
    login: LoginMethod
