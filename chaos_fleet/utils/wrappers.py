from pydantic import BaseModel as _PydanticBaseModel, ConfigDict


class BaseModel(_PydanticBaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    def dict(self, **kwargs) -> dict:
        return self.model_dump(**kwargs)
