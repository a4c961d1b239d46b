from sqlmodel import Session

class BaseRepository:
    def __init__(self, session: Session):
        self.session = session

    def _save(self, obj, commit: bool = True):
        self.session.add(obj)
        if not commit:
            # caller owns the transaction
            self.session.flush()
            return obj
        self.session.commit()
        self.session.refresh(obj)
        return obj
