from .models import StreamerState


class MembershipController:
    """Add/remove/pause requests for one site.

    Keeps the persisted streamer list and the session-only temporary list.
    Every mutating call returns ``dirty``: True only when the persisted list
    changed and needs to be written back.
    """

    def __init__(self, site, streamers=None):
        self.site = site
        self.streamers = list(streamers or [])
        self.temp_list = []

    @property
    def log(self):
        return self.site.log

    @property
    def registry(self):
        return self.site.registry

    def update_list(self, uid, add=True, pause=None, is_temp=False, init=False, name=None):
        name = name or uid
        if pause is not None:
            self.pause(uid, pause)
            return False
        if add:
            return self.add_streamer(uid, name, is_temp=is_temp, init=init)
        return self.remove_streamer(uid, name)

    def update_streamers(self, uids, add=True, init=False):
        dirty = False
        for uid in uids:
            dirty |= self.update_list(uid, add=add, is_temp=False, init=init)
        return dirty

    def add_streamer(self, uid, name=None, is_temp=False, init=False):
        name = name or uid
        dirty = False

        if uid in self.streamers or (is_temp and uid in self.temp_list):
            self.log.error(f"{name} is already in the capture list")
        elif not is_temp and uid in self.temp_list:
            # Promote a session-only entry to the persisted list
            self.temp_list.remove(uid)
            self.streamers.append(uid)
            streamer = self.registry.get(uid)
            if streamer is not None:
                streamer.is_temp = False
            self.log.info(f"{name} added to capture list")
            dirty = True
        else:
            if is_temp:
                self.temp_list.append(uid)
            else:
                self.streamers.append(uid)
                dirty = True
            self.log.info(f"{name} added to capture list" + (" (temporarily)" if is_temp else ""))

        if uid not in self.registry:
            self.registry.add(uid, name=name, site=self.site.name, is_temp=is_temp)
            if not init:
                self.site.refresh(self.registry.get(uid))
        return dirty

    def remove_streamer(self, uid, name=None):
        name = name or uid
        if not self.registry.remove(uid):
            self.log.error(f"{name} not in capture list.")
            return False
        self.log.info(f"{name} removed from capture list.")

        if uid in self.temp_list:
            self.temp_list.remove(uid)
        if uid in self.streamers:
            self.streamers.remove(uid)
            return True
        return False

    def pause(self, uid, on):
        streamer = self.registry.get(uid)
        if streamer is None:
            self.log.error(f"{uid} not in capture list.")
            return False
        self._set_paused(streamer, on)
        return True

    def pause_all(self, state):
        for streamer in self.registry.list():
            self._set_paused(streamer, state)

    def _set_paused(self, streamer, on):
        streamer.paused = on
        if on:
            self.log.info(f"{streamer.name} is paused.")
            self.site.capture.halt_streamer(streamer)
        else:
            self.log.info(f"{streamer.name} is unpaused.")
            if streamer.state is not StreamerState.OFFLINE:
                self.site.refresh(streamer)
